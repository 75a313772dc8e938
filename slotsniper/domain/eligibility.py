"""
Eligibility rules deciding which providers are worth tracking.
"""

from typing import Iterable, List

from .models import Provider

# Chief physician and associate chief physician, exactly as the portal labels them.
ELIGIBLE_TIERS = frozenset({"主任医师", "副主任医师"})


def is_eligible(provider: Provider) -> bool:
    """Return True if the provider's tier is in the fixed allow-set."""
    return provider.tier in ELIGIBLE_TIERS


def filter_eligible(providers: Iterable[Provider]) -> List[Provider]:
    """Keep eligible providers, preserving the order the portal returned them in."""
    return [provider for provider in providers if is_eligible(provider)]

"""
Tests for the AcquisitionExecutor claim-and-confirm race.
"""

import os
from contextlib import nullcontext
from typing import List

import pytest
import requests

from slotsniper.adapters.inventory_client import InventoryClient
from slotsniper.config import ConfigProvider
from slotsniper.domain.exceptions import InventoryAPIError
from slotsniper.domain.models import AvailabilityWindow, Candidate, ClaimTicket, Provider, SubSlot
from slotsniper.services.acquisition import AcquisitionExecutor
from slotsniper.services.candidate_cache import CandidateCache
from slotsniper.services.scheduler import TerminationSignal


class StubOrderClient:
    """Stub recording claim/confirm calls; outcomes are chosen per sub-slot id."""

    def __init__(self, claimable: set = frozenset(), confirmable: set | None = None):
        self._claimable = set(claimable)
        self._confirmable = set(claimable if confirmable is None else confirmable)
        self.calls: List[tuple] = []

    def pinned(self):
        return nullcontext()

    def claim(self, candidate):
        slot_id = candidate.sub_slot.slot_id
        self.calls.append(("claim", slot_id))
        if slot_id not in self._claimable:
            raise InventoryAPIError(f"{slot_id} taken")
        return ClaimTicket(token=f"t-{slot_id}", candidate=candidate)

    def confirm(self, ticket):
        slot_id = ticket.candidate.sub_slot.slot_id
        self.calls.append(("confirm", slot_id))
        if slot_id not in self._confirmable:
            raise InventoryAPIError(f"{slot_id} rejected")
        return f"order-{slot_id}"


def _candidates(*slot_ids: str) -> List[Candidate]:
    provider = Provider(provider_id=1, name="doc-1", department_id=200, tier="主任医师")
    window = AvailabilityWindow(
        provider=provider,
        date="2024-11-25",
        schedule_id="W1",
        time_type="am",
        time_type_label="am",
        remaining="1",
        is_open=True,
    )
    return [
        Candidate(
            provider=provider,
            window=window,
            sub_slot=SubSlot(slot_id=slot_id, begin_time="08:00", end_time="08:30", label=slot_id),
        )
        for slot_id in slot_ids
    ]


def _build(client, candidates):
    cache = CandidateCache()
    cache.replace(candidates)
    termination = TerminationSignal()
    return AcquisitionExecutor(client=client, cache=cache, termination=termination), cache, termination


class TestAcquisitionExecutor:
    """Tests for AcquisitionExecutor."""

    def test_empty_cache_is_a_no_op(self):
        client = StubOrderClient()
        executor, cache, termination = _build(client, [])

        assert executor.execute() is None
        assert client.calls == []
        assert not termination.is_set()
        assert cache.snapshot() == ()

    def test_iterates_in_reverse_insertion_order(self):
        client = StubOrderClient()
        executor, _, termination = _build(client, _candidates("a", "b", "c"))

        assert executor.execute() is None
        assert client.calls == [("claim", "c"), ("claim", "b"), ("claim", "a")]
        assert not termination.is_set()

    @pytest.mark.parametrize("k", [0, 1, 2, 3])
    def test_stops_at_first_success(self, k):
        # Iteration order is reversed, so iteration index k maps to slot 3 - k.
        slot_ids = ["s0", "s1", "s2", "s3"]
        iteration_order = list(reversed(slot_ids))
        winner = iteration_order[k]
        client = StubOrderClient(claimable={winner} | set(iteration_order[k + 1:]))
        executor, _, termination = _build(client, _candidates(*slot_ids))

        order_id = executor.execute()

        attempted = [slot for call, slot in client.calls if call == "claim"]
        assert attempted == iteration_order[: k + 1]
        assert client.calls[-1] == ("confirm", winner)
        assert order_id == f"order-{winner}"
        assert termination.is_set()
        assert termination.order_id == order_id

    def test_confirm_failure_moves_to_next_candidate(self):
        client = StubOrderClient(claimable={"a", "b"}, confirmable={"a"})
        executor, _, termination = _build(client, _candidates("a", "b"))

        assert executor.execute() == "order-a"
        assert client.calls == [("claim", "b"), ("confirm", "b"), ("claim", "a"), ("confirm", "a")]
        assert termination.order_id == "order-a"

    def test_no_attempts_after_termination(self):
        client = StubOrderClient(claimable={"a"})
        executor, _, termination = _build(client, _candidates("a"))

        assert executor.execute() == "order-a"
        client.calls.clear()

        assert executor.execute() is None
        assert client.calls == []
        assert termination.order_id == "order-a"

    def test_end_to_end_scenario(self):
        client = StubOrderClient(claimable={"s1"})
        executor, _, termination = _build(client, _candidates("s1", "s2"))

        order_id = executor.execute()

        assert client.calls == [("claim", "s2"), ("claim", "s1"), ("confirm", "s1")]
        assert order_id == "order-s1"
        assert termination.order_id == "order-s1"


OLD_CONFIG = """
user_id: "u1"
department_id: "200"
member_id: "old-member"
session_id: "old-session"
"""


class _Response:
    def __init__(self, text: str):
        self.status_code = 200
        self.text = text


class ReloadingSession:
    """Rewrites the config file and reloads it while the claim request is in flight."""

    def __init__(self, path, provider):
        self._path = path
        self._provider = provider
        self.requests: List[dict] = []

    def request(self, method, url, **kwargs):
        self.requests.append({"method": method, "url": url, **kwargs})
        if url.endswith("addOrder/main.do"):
            self._path.write_text(
                OLD_CONFIG.replace("old-member", "new-member").replace("old-session", "new-session"),
                encoding="utf-8",
            )
            stat = self._path.stat()
            os.utime(self._path, (stat.st_atime, stat.st_mtime + 10))
            assert self._provider.reload_if_changed() is True
            return _Response('<a href="/wxis/act/order/buildOrder.do?r=555&method=sch1">next</a>')
        return _Response("var data = { order_id: '1' }")


class TestConfigReloadDuringTick:
    """A reload on another task must not split one tick across two configs."""

    def test_claim_and_confirm_share_one_snapshot(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(OLD_CONFIG, encoding="utf-8")
        provider = ConfigProvider.from_path(path)
        session = ReloadingSession(path, provider)
        client = InventoryClient(provider, session=session, marker=lambda: 1)
        executor, _, termination = _build(client, _candidates("s1"))

        assert executor.execute() == "1"

        claim_request, confirm_request = session.requests
        assert claim_request["cookies"] == {"JSESSIONID": "old-session"}
        assert confirm_request["cookies"] == {"JSESSIONID": "old-session"}
        assert confirm_request["data"]["mid"] == "old-member"
        assert termination.order_id == "1"
        # The next tick picks up the reloaded credentials.
        assert provider.current.session_id == "new-session"

    def test_pin_is_released_after_a_failed_tick(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(OLD_CONFIG, encoding="utf-8")
        provider = ConfigProvider.from_path(path)

        class DownSession:
            def request(self, method, url, **kwargs):
                raise requests.exceptions.ConnectionError("down")

        client = InventoryClient(provider, session=DownSession(), marker=lambda: 1)
        executor, _, termination = _build(client, _candidates("s1"))

        assert executor.execute() is None
        assert not termination.is_set()

        path.write_text(OLD_CONFIG.replace("old-session", "new-session"), encoding="utf-8")
        stat = path.stat()
        os.utime(path, (stat.st_atime, stat.st_mtime + 10))
        provider.reload_if_changed()

        assert client.config.session_id == "new-session"

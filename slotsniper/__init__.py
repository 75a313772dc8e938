"""
slotsniper - Watch a registration portal and claim the first bookable appointment.
"""

__version__ = "0.1.0"

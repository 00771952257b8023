"""
Service interfaces for dependency inversion.
Allows swapping storage implementations without changing business logic.
"""

from .booking_store import BookingStore, BookingTransaction
from .records import BookingRecord, BookingView, ClassSnapshot, Principal

__all__ = [
    'BookingStore', 'BookingTransaction',
    'BookingRecord', 'BookingView', 'ClassSnapshot', 'Principal',
]

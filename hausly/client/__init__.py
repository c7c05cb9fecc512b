from .api import ApiClientError, HauslyClient, normalize_id
from .bookings import BookingList
from .notifications import PendingBookingsBadge

__all__ = ["ApiClientError", "BookingList", "HauslyClient", "PendingBookingsBadge", "normalize_id"]

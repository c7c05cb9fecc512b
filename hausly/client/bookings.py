import logging
from typing import Iterable, Optional, Union

from ..models import BookingStatus
from .api import ApiClientError, HauslyClient, canonical_id, normalize_id

logger = logging.getLogger(__name__)


class BookingList:
    """
    Local view of a user's bookings.

    Status changes are applied to the local entry first, keyed by the
    canonical id, then sent to the server. The server's copy replaces the
    local fields on success; the previous status is restored on failure.
    The list is never refetched after an action.
    """

    def __init__(self, client: HauslyClient, bookings: Optional[Iterable[dict]] = None):
        self.client = client
        self._items: list[dict] = [normalize_id(b) for b in bookings or []]

    @property
    def items(self) -> list[dict]:
        return list(self._items)

    async def load(self, **filters) -> list[dict]:
        self._items = await self.client.get_bookings(**filters)
        return self.items

    def get(self, booking: Union[str, dict]) -> Optional[dict]:
        booking_id = canonical_id(booking)
        for item in self._items:
            if item.get("id") == booking_id:
                return item
        return None

    def patch(self, booking: Union[str, dict], **changes) -> Optional[dict]:
        """Replace one entry in place. Returns the patched entry, or None if absent."""
        booking_id = canonical_id(booking)
        for index, item in enumerate(self._items):
            if item.get("id") == booking_id:
                patched = normalize_id({**item, **changes, "id": booking_id})
                self._items[index] = patched
                return patched
        return None

    async def apply_status(self, booking: Union[str, dict], status: str) -> dict:
        booking_id = canonical_id(booking)
        current = self.get(booking_id)
        previous_status = current.get("status") if current else None

        self.patch(booking_id, status=status)
        try:
            updated = await self.client.update_booking_status(booking_id, status)
        except ApiClientError as e:
            logger.warning(f"⚠️ Status change on {booking_id} to {status} failed: {e.code}")
            if previous_status is not None:
                self.patch(booking_id, status=previous_status)
            raise

        return self.patch(booking_id, **(updated or {})) or updated

    async def cancel(self, booking: Union[str, dict]) -> dict:
        return await self.apply_status(booking, BookingStatus.CANCELLED.value)

    async def confirm(self, booking: Union[str, dict]) -> dict:
        return await self.apply_status(booking, BookingStatus.CONFIRMED.value)

    async def reject(self, booking: Union[str, dict]) -> dict:
        # A provider rejecting a request cancels it
        return await self.apply_status(booking, BookingStatus.CANCELLED.value)

    async def complete(self, booking: Union[str, dict]) -> dict:
        return await self.apply_status(booking, BookingStatus.COMPLETED.value)

    def pending_count(self) -> int:
        return sum(1 for b in self._items if b.get("status") == BookingStatus.PENDING.value)

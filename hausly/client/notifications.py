import asyncio
import logging
from typing import Callable, Optional

from ..models import BookingStatus
from .api import ApiClientError, HauslyClient

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 30.0
MAX_BACKOFF_SECONDS = 300.0
REFRESH_EVENTS = frozenset({"booking_status_updated", "new_booking_received"})


class PendingBookingsBadge:
    """
    Count of a provider's pending booking requests, kept fresh by polling.

    Refreshes every `interval` seconds and whenever `notify()` receives one
    of REFRESH_EVENTS. At most one fetch runs at a time: a refresh requested
    while one is in flight waits for that fetch instead of starting another.
    Consecutive failures double the polling delay up to `max_backoff`; the
    first success resets it.
    """

    def __init__(
        self,
        client: HauslyClient,
        provider_id: str,
        interval: float = POLL_INTERVAL_SECONDS,
        max_backoff: float = MAX_BACKOFF_SECONDS,
        on_change: Optional[Callable[[int], None]] = None,
    ):
        self.client = client
        self.provider_id = provider_id
        self.interval = interval
        self.max_backoff = max_backoff
        self.on_change = on_change

        self.count = 0
        self.failures = 0
        self.fetches = 0
        self._inflight: Optional[asyncio.Task] = None
        self._poller: Optional[asyncio.Task] = None

    @property
    def display(self) -> str:
        """Badge text; empty when there is nothing pending"""
        if self.count <= 0:
            return ""
        return "99+" if self.count > 99 else str(self.count)

    @property
    def next_delay(self) -> float:
        if self.failures == 0:
            return self.interval
        return min(self.interval * (2 ** self.failures), self.max_backoff)

    @property
    def running(self) -> bool:
        return self._poller is not None and not self._poller.done()

    async def refresh(self) -> int:
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._fetch())
        # Shielded so a cancelled caller does not cancel the shared fetch
        return await asyncio.shield(self._inflight)

    async def _fetch(self) -> int:
        self.fetches += 1
        try:
            bookings = await self.client.get_bookings(provider_id=self.provider_id)
        except ApiClientError as e:
            self.failures += 1
            logger.warning(
                f"⚠️ Pending bookings refresh failed ({e.status} {e.code}), "
                f"retrying in {self.next_delay:.0f}s"
            )
            return self.count

        self.failures = 0
        pending = sum(1 for b in bookings if b.get("status") == BookingStatus.PENDING.value)
        if pending != self.count:
            self.count = pending
            if self.on_change:
                self.on_change(pending)
        return self.count

    async def notify(self, event: str) -> Optional[int]:
        """Refresh on a booking change event. Other events are ignored."""
        if event not in REFRESH_EVENTS:
            return None
        return await self.refresh()

    async def _run(self) -> None:
        while True:
            await self.refresh()
            await asyncio.sleep(self.next_delay)

    def start(self) -> None:
        if self.running:
            return
        self._poller = asyncio.ensure_future(self._run())
        logger.info(f"🔄 Pending bookings badge polling started for {self.provider_id}")

    async def stop(self) -> None:
        poller, self._poller = self._poller, None
        if poller is None:
            return
        poller.cancel()
        try:
            await poller
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"❌ Pending bookings poller had failed: {type(e).__name__}: {e}")
        logger.info(f"🛑 Pending bookings badge polling stopped for {self.provider_id}")

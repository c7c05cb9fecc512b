"""
Booking status state machine

Statuses: pending → confirmed → completed, pending → cancelled,
confirmed → cancelled. cancelled and completed are terminal.
"""

import logging

from ... import errors
from ...auth import Principal
from ...errors import ApiError
from ...models import BOOKING_STATUSES, BookingStatus

logger = logging.getLogger(__name__)

PENDING = BookingStatus.PENDING.value
CONFIRMED = BookingStatus.CONFIRMED.value
CANCELLED = BookingStatus.CANCELLED.value
COMPLETED = BookingStatus.COMPLETED.value

VALID_TRANSITIONS = {
    PENDING: [CONFIRMED, CANCELLED],
    CONFIRMED: [CANCELLED, COMPLETED],
    CANCELLED: [],  # Terminal state
    COMPLETED: [],  # Terminal state
}

# Which edges each booking party may drive. Admins may drive any legal edge.
PROVIDER_TRANSITIONS = {
    (PENDING, CONFIRMED),
    (PENDING, CANCELLED),
    (CONFIRMED, CANCELLED),
    (CONFIRMED, COMPLETED),
}
CUSTOMER_TRANSITIONS = {
    (PENDING, CANCELLED),
}


def validate_status_value(status: str) -> str:
    if status not in BOOKING_STATUSES:
        raise ApiError(400, errors.INVALID_STATUS, "Invalid status value")
    return status


def validate_status_transition(current_status: str, new_status: str) -> bool:
    """
    Validate if a booking status transition is allowed.

    Setting the status a booking already has is accepted as a no-op.
    """
    if current_status == new_status:
        return True
    return new_status in VALID_TRANSITIONS.get(current_status, [])


def is_party(booking: dict, principal: Principal) -> bool:
    return principal.uid in (booking.get("userId"), booking.get("providerId"))


def ensure_party(booking: dict, principal: Principal) -> None:
    if principal.is_admin or is_party(booking, principal):
        return
    logger.warning(f"🚫 {principal.uid} is not a party to booking {booking.get('_id')}")
    raise ApiError(403, errors.NOT_BOOKING_PARTY, "Not authorized to access this booking")


def ensure_transition_allowed(booking: dict, new_status: str, principal: Principal) -> None:
    """
    Raise unless principal may move booking to new_status.

    Order of checks: party membership (403), legality of the edge (409),
    then whether this party may drive that edge (403).
    """
    ensure_party(booking, principal)

    current = booking.get("status", PENDING)
    if not validate_status_transition(current, new_status):
        raise ApiError(
            409,
            errors.ILLEGAL_TRANSITION,
            f"Cannot change booking status from {current} to {new_status}",
        )

    if current == new_status or principal.is_admin:
        return

    edge = (current, new_status)
    if principal.uid == booking.get("providerId") and edge in PROVIDER_TRANSITIONS:
        return
    if principal.uid == booking.get("userId") and edge in CUSTOMER_TRANSITIONS:
        return

    raise ApiError(
        403,
        errors.INSUFFICIENT_PERMISSIONS,
        f"You are not allowed to change this booking from {current} to {new_status}",
    )

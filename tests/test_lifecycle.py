import pytest

from hausly.auth import Principal
from hausly.domain.bookings.lifecycle import (
    VALID_TRANSITIONS,
    ensure_transition_allowed,
    validate_status_transition,
    validate_status_value,
)
from hausly.errors import ApiError

BOOKING = {"_id": "b1", "userId": "cust1", "providerId": "prov1", "status": "pending"}

CUSTOMER = Principal(uid="cust1", role="customer")
PROVIDER = Principal(uid="prov1", role="provider")
ADMIN = Principal(uid="admin1", role="admin")
STRANGER = Principal(uid="cust2", role="customer")


@pytest.mark.parametrize(
    "current,new,allowed",
    [
        ("pending", "confirmed", True),
        ("pending", "cancelled", True),
        ("confirmed", "cancelled", True),
        ("confirmed", "completed", True),
        ("pending", "completed", False),
        ("confirmed", "pending", False),
        ("cancelled", "pending", False),
        ("completed", "cancelled", False),
        ("completed", "completed", True),
    ],
)
def test_transition_table(current, new, allowed):
    assert validate_status_transition(current, new) is allowed


def test_terminal_states_have_no_exits():
    assert VALID_TRANSITIONS["cancelled"] == []
    assert VALID_TRANSITIONS["completed"] == []


def test_unknown_status_value():
    with pytest.raises(ApiError) as exc_info:
        validate_status_value("archived")

    assert exc_info.value.code == "INVALID_STATUS"


def _code(booking, status, principal):
    try:
        ensure_transition_allowed(booking, status, principal)
    except ApiError as e:
        return e.status_code, e.code
    return None


def test_party_check_comes_first():
    completed = {**BOOKING, "status": "completed"}

    assert _code(completed, "pending", STRANGER) == (403, "NOT_BOOKING_PARTY")


def test_illegal_edge_beats_party_permission():
    completed = {**BOOKING, "status": "completed"}

    assert _code(completed, "cancelled", CUSTOMER) == (409, "ILLEGAL_TRANSITION")


def test_provider_edges():
    assert _code(BOOKING, "confirmed", PROVIDER) is None
    assert _code(BOOKING, "cancelled", PROVIDER) is None
    assert _code({**BOOKING, "status": "confirmed"}, "completed", PROVIDER) is None


def test_customer_edges():
    assert _code(BOOKING, "cancelled", CUSTOMER) is None
    assert _code(BOOKING, "confirmed", CUSTOMER) == (403, "INSUFFICIENT_PERMISSIONS")
    assert _code({**BOOKING, "status": "confirmed"}, "completed", CUSTOMER) == (
        403,
        "INSUFFICIENT_PERMISSIONS",
    )


def test_admin_needs_no_party_membership():
    assert _code({**BOOKING, "status": "confirmed"}, "completed", ADMIN) is None

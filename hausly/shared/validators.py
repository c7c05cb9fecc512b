"""Shared validation utilities"""

import re
from typing import Optional

from bson import ObjectId

from ..errors import INVALID_ID, ApiError

OBJECT_ID_PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")


def is_object_id(value: Optional[str]) -> bool:
    """True for a 24 character hex string"""
    return bool(value) and isinstance(value, str) and bool(OBJECT_ID_PATTERN.match(value))


def to_object_id(value: str, label: str = "ID") -> ObjectId:
    """
    Convert a path/body identifier to an ObjectId.

    Raises:
        ApiError: 400 INVALID_ID when the value is not a 24 character hex string
    """
    if isinstance(value, ObjectId):
        return value
    if not is_object_id(value):
        raise ApiError(400, INVALID_ID, f"Invalid {label} format")
    return ObjectId(value)


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Please add a valid email")

    return email


def validate_time_slot(value: str) -> str:
    """Accept "HH:MM" (24h) or "HH:MM AM/PM" time slots"""
    value = value.strip()
    if re.match(r"^([01]?\d|2[0-3]):[0-5]\d$", value):
        return value
    if re.match(r"^(0?[1-9]|1[0-2]):[0-5]\d\s?(AM|PM|am|pm)$", value):
        return value.upper()
    raise ValueError("Please add a valid time for the service")

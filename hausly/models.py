"""
Document shapes for the Hausly MongoDB collections.

Collections hold plain dicts with camelCase keys. Users are referenced by
their Firebase UID string; other documents are referenced by ObjectId.
"""

from enum import Enum

USERS = "users"
SERVICES = "services"
BOOKINGS = "bookings"
REVIEWS = "reviews"
MESSAGES = "messages"
FAVORITES = "favorites"
CATEGORIES = "categories"
PROVIDER_PROFILES = "provider_profiles"


class Role(str, Enum):
    CUSTOMER = "customer"
    PROVIDER = "provider"
    ADMIN = "admin"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    NONE = ""
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    CASH = "cash"


class ServiceCategory(str, Enum):
    CLEANING = "Cleaning"
    PLUMBING = "Plumbing"
    ELECTRICAL = "Electrical"
    GARDENING = "Gardening"
    PAINTING = "Painting"
    MOVING = "Moving"
    OTHER = "Other"


BOOKING_STATUSES = {s.value for s in BookingStatus}
TERMINAL_STATUSES = {BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value}

DEFAULT_SERVICE_IMAGE = "/images/default-service.jpg"
DEFAULT_CATEGORY_IMAGE = "/images/default-category.jpg"

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


def default_availability() -> dict:
    """Mon-Fri 09:00-17:00, weekends off"""
    return {
        day: {
            "isAvailable": day not in ("saturday", "sunday"),
            "startTime": "09:00",
            "endTime": "17:00",
        }
        for day in WEEKDAYS
    }

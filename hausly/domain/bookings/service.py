"""Booking service - Business logic for the booking lifecycle"""

import logging
from typing import Optional

from pymongo.database import Database

from ... import errors
from ...auth import Principal
from ...errors import ApiError
from ...models import SERVICES, PaymentMethod, PaymentStatus, Role
from ...shared.validators import to_object_id
from ...utils.serialization import serialize_document, serialize_many, to_datetime
from . import lifecycle
from .repository import BookingRepository
from .schemas import BookingCreate, BookingUpdate

logger = logging.getLogger(__name__)


class BookingService:
    """Service layer for booking business logic"""

    def __init__(self, db: Database):
        self.db = db
        self.repo = BookingRepository()

    def _get_document(self, booking_id: str) -> dict:
        booking = self.repo.get_booking(self.db, to_object_id(booking_id, "booking ID"))
        if not booking:
            raise ApiError(404, errors.BOOKING_NOT_FOUND, "Booking not found")
        return booking

    def list_bookings(
        self,
        principal: Principal,
        user_id: Optional[str] = None,
        provider_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> list[dict]:
        """List bookings, newest first. Non-admins only see bookings they are part of."""
        query: dict = {}
        if user_id:
            query["userId"] = user_id
        if provider_id:
            query["providerId"] = provider_id
        if status:
            query["status"] = lifecycle.validate_status_value(status)
        if not principal.is_admin:
            query["$or"] = [{"userId": principal.uid}, {"providerId": principal.uid}]
        return serialize_many(self.repo.get_bookings(self.db, query))

    def get_booking(self, booking_id: str, principal: Principal) -> dict:
        booking = self._get_document(booking_id)
        lifecycle.ensure_party(booking, principal)
        return serialize_document(booking)

    def create_booking(self, data: BookingCreate, principal: Principal) -> dict:
        """
        Create a pending booking for the calling customer.

        Checks run in this order: service exists (404), caller is not the
        service's provider (400), caller role is customer or admin (403),
        service is active (400).
        """
        service_oid = to_object_id(data.serviceId, "service ID")
        service = self.db[SERVICES].find_one({"_id": service_oid})
        if not service:
            raise ApiError(404, errors.SERVICE_NOT_FOUND, "Service not found")

        if service.get("providerId") == principal.uid:
            logger.warning(f"🚫 Provider {principal.uid} tried to book own service {data.serviceId}")
            raise ApiError(400, errors.SELF_BOOKING_NOT_ALLOWED, "You cannot book your own service")

        if principal.role == Role.PROVIDER.value:
            raise ApiError(
                403,
                errors.PROVIDER_BOOKING_RESTRICTED,
                "Providers cannot book services. Please use a customer account.",
            )
        if principal.role not in (Role.CUSTOMER.value, Role.ADMIN.value):
            raise ApiError(
                403, errors.INSUFFICIENT_PERMISSIONS, "Only customers can book services"
            )

        # Re-read immediately before the insert
        service = self.repo.get_active_service(self.db, service_oid)
        if not service:
            if self.db[SERVICES].count_documents({"_id": service_oid}) == 0:
                raise ApiError(404, errors.SERVICE_NOT_FOUND, "Service not found")
            raise ApiError(400, errors.SERVICE_INACTIVE, "This service is no longer available")

        booking = self.repo.create_booking(
            self.db,
            serviceId=service["_id"],
            userId=principal.uid,
            userName=principal.name,
            userEmail=principal.email,
            providerId=service["providerId"],
            date=to_datetime(data.date),
            time=data.time,
            address=data.address,
            notes=data.notes or "",
            status=lifecycle.PENDING,
            price=service["price"],
            paymentStatus=PaymentStatus.PENDING.value,
            paymentMethod=PaymentMethod.NONE.value,
            paymentId="",
        )

        logger.info(
            f"📅 Booking created: Service ID {data.serviceId}, Date {data.date}, Status: pending"
        )
        return {
            "message": "Booking request submitted successfully.",
            "booking": serialize_document(booking),
            "serviceTitle": service.get("title", ""),
            "providerName": service.get("providerName", ""),
        }

    def update_booking(self, booking_id: str, data: BookingUpdate, principal: Principal) -> dict:
        """Edit scheduling details while the booking is still pending"""
        booking = self._get_document(booking_id)
        if booking.get("userId") != principal.uid and not principal.is_admin:
            raise ApiError(403, errors.NOT_BOOKING_PARTY, "Only the customer can edit this booking")

        updates = data.model_dump(exclude_none=True)
        if "date" in updates:
            updates["date"] = to_datetime(data.date)
        if not updates:
            return {"message": "Booking updated successfully", "booking": serialize_document(booking)}

        updated = self.repo.update_booking(self.db, booking["_id"], lifecycle.PENDING, **updates)
        if not updated:
            raise ApiError(
                409, errors.ILLEGAL_TRANSITION, "Only pending bookings can be edited"
            )
        return {"message": "Booking updated successfully", "booking": serialize_document(updated)}

    def update_status(self, booking_id: str, status: str, principal: Principal) -> dict:
        new_status = lifecycle.validate_status_value(status)
        booking = self._get_document(booking_id)
        lifecycle.ensure_transition_allowed(booking, new_status, principal)

        current = booking["status"]
        if current == new_status:
            return {
                "message": "Booking status updated successfully",
                "booking": serialize_document(booking),
            }

        updated = self.repo.transition_status(self.db, booking["_id"], current, new_status)
        if not updated:
            logger.warning(f"⚠️ Booking {booking_id} changed status concurrently")
            raise ApiError(
                409,
                errors.ILLEGAL_TRANSITION,
                "Booking status changed in the meantime. Please refresh and try again.",
            )

        logger.info(f"✅ Booking {booking_id} transitioned: {current} → {new_status} by {principal.uid}")
        return {
            "message": "Booking status updated successfully",
            "booking": serialize_document(updated),
        }

    def cancel_or_remove(self, booking_id: str, principal: Principal) -> dict:
        """
        Cancel an open booking, or remove one that is already cancelled.

        Cancelling follows the same rules as the status route.
        """
        booking = self._get_document(booking_id)

        if booking.get("status") == lifecycle.CANCELLED:
            if booking.get("userId") != principal.uid and not principal.is_admin:
                raise ApiError(
                    403, errors.NOT_BOOKING_PARTY, "Not authorized to delete this booking"
                )
            self.repo.delete_booking(self.db, booking["_id"])
            logger.info(f"🗑️ Booking {booking_id} deleted by {principal.uid}")
            return {"message": "Booking deleted successfully"}

        result = self.update_status(booking_id, lifecycle.CANCELLED, principal)
        result["message"] = "Booking cancelled successfully"
        return result

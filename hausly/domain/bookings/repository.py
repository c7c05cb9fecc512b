"""Booking repository - Database operations for bookings"""

from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from ...models import BOOKINGS, SERVICES
from ...utils.serialization import utcnow


class BookingRepository:
    """Repository for booking database operations"""

    @staticmethod
    def get_bookings(db: Database, query: dict) -> list[dict]:
        return list(db[BOOKINGS].find(query).sort([("createdAt", DESCENDING), ("_id", DESCENDING)]))

    @staticmethod
    def get_booking(db: Database, booking_id: ObjectId) -> Optional[dict]:
        return db[BOOKINGS].find_one({"_id": booking_id})

    @staticmethod
    def get_active_service(db: Database, service_id: ObjectId) -> Optional[dict]:
        return db[SERVICES].find_one({"_id": service_id, "isActive": {"$ne": False}})

    @staticmethod
    def create_booking(db: Database, **booking_data) -> dict:
        now = utcnow()
        doc = {**booking_data, "createdAt": now, "updatedAt": now}
        inserted_id = db[BOOKINGS].insert_one(doc).inserted_id
        return db[BOOKINGS].find_one({"_id": inserted_id})

    @staticmethod
    def update_booking(db: Database, booking_id: ObjectId, expected_status: str, **updates) -> Optional[dict]:
        """Apply updates only while the booking still has expected_status"""
        updates["updatedAt"] = utcnow()
        return db[BOOKINGS].find_one_and_update(
            {"_id": booking_id, "status": expected_status},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def transition_status(
        db: Database, booking_id: ObjectId, current_status: str, new_status: str
    ) -> Optional[dict]:
        """
        Compare-and-set the status.

        Returns None when the stored status is no longer current_status.
        """
        return db[BOOKINGS].find_one_and_update(
            {"_id": booking_id, "status": current_status},
            {"$set": {"status": new_status, "updatedAt": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def delete_booking(db: Database, booking_id: ObjectId) -> bool:
        return db[BOOKINGS].delete_one({"_id": booking_id}).deleted_count == 1

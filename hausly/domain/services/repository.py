"""Service repository - Database operations for the service catalog"""

import re
from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database

from ...models import SERVICES
from ...utils.serialization import utcnow


class ServiceRepository:
    """Repository for service database operations"""

    @staticmethod
    def build_filter(
        category: Optional[str] = None,
        search: Optional[str] = None,
        provider_id: Optional[str] = None,
        include_inactive: bool = False,
    ) -> dict:
        query: dict = {}
        if not include_inactive:
            query["isActive"] = {"$ne": False}
        if category:
            query["category"] = category
        if provider_id:
            query["providerId"] = provider_id
        if search:
            pattern = re.escape(search.strip())
            query["$or"] = [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
                {"providerName": {"$regex": pattern, "$options": "i"}},
            ]
        return query

    @staticmethod
    def list_services(db: Database, query: dict, skip: int, limit: int) -> list[dict]:
        cursor = (
            db[SERVICES].find(query).sort([("createdAt", DESCENDING), ("_id", DESCENDING)])
        )
        return list(cursor.skip(skip).limit(limit))

    @staticmethod
    def count_services(db: Database, query: dict) -> int:
        return db[SERVICES].count_documents(query)

    @staticmethod
    def get_categories(db: Database) -> list[str]:
        """Distinct categories of listed services, sorted"""
        return sorted(
            c for c in db[SERVICES].distinct("category", {"isActive": {"$ne": False}}) if c
        )

    @staticmethod
    def get_service(db: Database, service_id: ObjectId) -> Optional[dict]:
        return db[SERVICES].find_one({"_id": service_id})

    @staticmethod
    def create_service(db: Database, **service_data) -> dict:
        now = utcnow()
        doc = {
            "rating": 0,
            "reviewCount": 0,
            "isActive": True,
            **service_data,
            "createdAt": now,
            "updatedAt": now,
        }
        inserted_id = db[SERVICES].insert_one(doc).inserted_id
        return db[SERVICES].find_one({"_id": inserted_id})

    @staticmethod
    def update_service(db: Database, service_id: ObjectId, **updates) -> Optional[dict]:
        updates["updatedAt"] = utcnow()
        return db[SERVICES].find_one_and_update(
            {"_id": service_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER,
        )

    @staticmethod
    def set_rating(db: Database, service_id: ObjectId, rating: float, review_count: int) -> None:
        db[SERVICES].update_one(
            {"_id": service_id},
            {"$set": {"rating": rating, "reviewCount": review_count}},
        )

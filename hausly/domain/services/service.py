"""Service catalog - Business logic for service listings"""

import logging
import math
import time
from typing import Optional

from pymongo.database import Database

from ... import errors
from ...auth import Principal
from ...errors import ApiError
from ...models import DEFAULT_SERVICE_IMAGE
from ...shared.validators import to_object_id
from ...utils.serialization import serialize_document, serialize_many
from .repository import ServiceRepository
from .schemas import ServiceCreate, ServiceUpdate

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 100


class CatalogService:
    """Service layer for the service catalog"""

    def __init__(self, db: Database):
        self.db = db
        self.repo = ServiceRepository()

    def list_services(
        self,
        category: Optional[str] = None,
        search: Optional[str] = None,
        provider_id: Optional[str] = None,
        page: int = 1,
        limit: int = DEFAULT_PAGE_SIZE,
        include_inactive: bool = False,
        principal: Optional[Principal] = None,
    ) -> dict:
        started = time.perf_counter()
        page = max(page, 1)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)

        # Inactive listings are only shown to the provider browsing their own services
        own_listing = bool(provider_id) and principal is not None and (
            principal.uid == provider_id or principal.is_admin
        )
        query = self.repo.build_filter(
            category=category,
            search=search,
            provider_id=provider_id,
            include_inactive=include_inactive and own_listing,
        )
        total = self.repo.count_services(self.db, query)
        services = self.repo.list_services(self.db, query, (page - 1) * limit, limit)
        pages = math.ceil(total / limit) if total else 0

        return {
            "services": serialize_many(services),
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": pages,
                "hasMore": page < pages,
            },
            "meta": {
                "queryTime": round((time.perf_counter() - started) * 1000, 2),
                "count": len(services),
            },
        }

    def get_categories(self) -> list[str]:
        return self.repo.get_categories(self.db)

    def get_service_document(self, service_id: str) -> dict:
        service = self.repo.get_service(self.db, to_object_id(service_id, "service ID"))
        if not service:
            raise ApiError(404, errors.SERVICE_NOT_FOUND, "Service not found")
        return service

    def get_service(self, service_id: str) -> dict:
        return serialize_document(self.get_service_document(service_id))

    def _get_owned(self, service_id: str, principal: Principal) -> dict:
        service = self.get_service_document(service_id)
        if service.get("providerId") != principal.uid and not principal.is_admin:
            logger.warning(f"🚫 {principal.uid} tried to modify service {service_id}")
            raise ApiError(403, errors.INSUFFICIENT_PERMISSIONS, "Not your service")
        return service

    def create_service(self, data: ServiceCreate, principal: Principal) -> dict:
        logger.info(f"📥 Creating service '{data.title}' for provider {principal.uid}")
        service = self.repo.create_service(
            self.db,
            title=data.title.strip(),
            description=data.description,
            price=data.price,
            category=data.category.value,
            image=data.image or DEFAULT_SERVICE_IMAGE,
            providerId=principal.uid,
            providerName=principal.name,
            providerPhoto=principal.photo_url,
        )
        return serialize_document(service)

    def update_service(self, service_id: str, data: ServiceUpdate, principal: Principal) -> dict:
        service = self._get_owned(service_id, principal)
        updates = data.model_dump(exclude_none=True)
        if "category" in updates:
            updates["category"] = data.category.value
        if not updates:
            return serialize_document(service)
        updated = self.repo.update_service(self.db, service["_id"], **updates)
        return serialize_document(updated)

    def deactivate_service(self, service_id: str, principal: Principal) -> dict:
        """Services are soft-disabled, never removed, so bookings keep their reference"""
        service = self._get_owned(service_id, principal)
        updated = self.repo.update_service(self.db, service["_id"], isActive=False)
        logger.info(f"🗑️ Service {service_id} deactivated by {principal.uid}")
        return {"message": "Service deactivated", "service": serialize_document(updated)}

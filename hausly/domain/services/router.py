"""Service catalog router - FastAPI endpoints for service listings"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from ...auth import Principal, get_optional_user, require_roles
from ...database import get_db
from ...models import Role
from .schemas import ServiceCreate, ServiceListResponse, ServiceUpdate
from .service import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE, CatalogService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])

provider_only = require_roles(Role.PROVIDER)


def get_catalog_service(db: Database = Depends(get_db)) -> CatalogService:
    """Dependency injection for CatalogService"""
    return CatalogService(db)


@router.get("", response_model=ServiceListResponse)
async def list_services(
    category: Optional[str] = Query(None),
    search: Optional[str] = Query(None),
    providerId: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE),
    includeInactive: bool = Query(False),
    principal: Optional[Principal] = Depends(get_optional_user),
    service: CatalogService = Depends(get_catalog_service),
):
    """Browse the catalog with filtering, search and pagination"""
    return service.list_services(
        category=category,
        search=search,
        provider_id=providerId,
        page=page,
        limit=limit,
        include_inactive=includeInactive,
        principal=principal,
    )


# Registered before /{service_id} so "categories" is not taken for an id
@router.get("/categories", response_model=list[str])
async def get_categories(service: CatalogService = Depends(get_catalog_service)):
    return service.get_categories()


@router.get("/{service_id}")
async def get_service(service_id: str, service: CatalogService = Depends(get_catalog_service)):
    return service.get_service(service_id)


@router.post("", status_code=201)
async def create_service(
    data: ServiceCreate,
    principal: Principal = Depends(provider_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.create_service(data, principal)


@router.put("/{service_id}")
async def update_service(
    service_id: str,
    data: ServiceUpdate,
    principal: Principal = Depends(provider_only),
    service: CatalogService = Depends(get_catalog_service),
):
    return service.update_service(service_id, data, principal)


@router.delete("/{service_id}")
async def delete_service(
    service_id: str,
    principal: Principal = Depends(provider_only),
    service: CatalogService = Depends(get_catalog_service),
):
    """Soft-disable a service"""
    return service.deactivate_service(service_id, principal)

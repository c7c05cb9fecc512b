"""Service catalog schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, Field

from ...models import ServiceCategory


class ServiceCreate(BaseModel):
    """Schema for a provider creating a new service"""

    title: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0)
    category: ServiceCategory
    image: Optional[str] = None


class ServiceUpdate(BaseModel):
    """Schema for the owning provider updating a service"""

    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    category: Optional[ServiceCategory] = None
    image: Optional[str] = None
    isActive: Optional[bool] = None


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int
    hasMore: bool


class ListMeta(BaseModel):
    queryTime: float
    count: int


class ServiceListResponse(BaseModel):
    services: list[dict]
    pagination: Pagination
    meta: ListMeta

"""Booking router - FastAPI endpoints for the booking lifecycle"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pymongo.database import Database

from ...auth import Principal, get_current_user
from ...database import get_db
from .schemas import (
    BookingCreate,
    BookingCreatedResponse,
    BookingResponse,
    BookingStatusUpdate,
    BookingUpdate,
)
from .service import BookingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def get_booking_service(db: Database = Depends(get_db)) -> BookingService:
    """Dependency injection for BookingService"""
    return BookingService(db)


@router.get("")
async def list_bookings(
    userId: Optional[str] = Query(None),
    providerId: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    principal: Principal = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_bookings(principal, user_id=userId, provider_id=providerId, status=status)


@router.get("/{booking_id}")
async def get_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_booking(booking_id, principal)


@router.post("", status_code=201, response_model=BookingCreatedResponse)
async def create_booking(
    data: BookingCreate,
    principal: Principal = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    """Request a booking. Role checks live in the service so each refusal gets its own code."""
    return service.create_booking(data, principal)


@router.put("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: str,
    data: BookingUpdate,
    principal: Principal = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.update_booking(booking_id, data, principal)


@router.put("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: str,
    data: BookingStatusUpdate,
    principal: Principal = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.update_status(booking_id, data.status, principal)


@router.delete("/{booking_id}")
async def delete_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel_or_remove(booking_id, principal)

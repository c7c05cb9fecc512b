"""Booking domain schemas - Pydantic models for validation"""

import datetime as dt
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_time_slot


def _clean_address(value: str) -> str:
    if not value.strip():
        raise ValueError("Please add an address")
    return value.strip()


class BookingCreate(BaseModel):
    """
    Schema for a customer requesting a booking.

    Price, provider and customer identity are never read from the request;
    they are copied from the Service and the caller's User record.
    """

    serviceId: str
    date: dt.date
    time: str = Field(..., min_length=1)
    address: str = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str) -> str:
        return validate_time_slot(v)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        return _clean_address(v)


class BookingUpdate(BaseModel):
    """Schema for a customer editing a pending booking"""

    date: Optional[dt.date] = None
    time: Optional[str] = None
    address: Optional[str] = Field(None, min_length=1)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return validate_time_slot(v)

    @field_validator("address")
    @classmethod
    def validate_address(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _clean_address(v)


class BookingStatusUpdate(BaseModel):
    # Checked against the enum in the service layer so an unknown value is INVALID_STATUS
    status: str


class BookingCreatedResponse(BaseModel):
    message: str
    booking: dict
    serviceTitle: str
    providerName: str


class BookingResponse(BaseModel):
    message: str
    booking: dict

import datetime as dt
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .. import errors
from ..auth import Principal, get_current_user, require_roles
from ..database import get_db
from ..errors import ApiError
from ..models import PROVIDER_PROFILES, USERS, WEEKDAYS, Role, default_availability
from ..utils.serialization import serialize_document, serialize_many, to_datetime, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/provider-profiles", tags=["Provider Profiles"])

provider_only = require_roles(Role.PROVIDER)
admin_only = require_roles(Role.ADMIN)

TIME_PATTERN = r"^([01]\d|2[0-3]):[0-5]\d$"


class License(BaseModel):
    name: str = Field(..., min_length=1)
    number: str = Field(..., min_length=1)
    expiryDate: Optional[dt.date] = None
    verified: bool = False


class Insurance(BaseModel):
    hasInsurance: bool = False
    provider: str = ""
    policyNumber: str = ""
    expiryDate: Optional[dt.date] = None


class DayAvailability(BaseModel):
    isAvailable: bool = True
    startTime: str = Field("09:00", pattern=TIME_PATTERN)
    endTime: str = Field("17:00", pattern=TIME_PATTERN)


class Availability(BaseModel):
    monday: Optional[DayAvailability] = None
    tuesday: Optional[DayAvailability] = None
    wednesday: Optional[DayAvailability] = None
    thursday: Optional[DayAvailability] = None
    friday: Optional[DayAvailability] = None
    saturday: Optional[DayAvailability] = None
    sunday: Optional[DayAvailability] = None


class PortfolioItem(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    imageUrl: str = Field(..., min_length=1)


class ProviderProfileCreate(BaseModel):
    businessName: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1, max_length=1000)
    yearsOfExperience: int = Field(0, ge=0)
    licenses: list[License] = []
    insurance: Insurance = Insurance()
    serviceArea: list[str] = []
    availability: Optional[Availability] = None


class ProviderProfileUpdate(BaseModel):
    businessName: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    yearsOfExperience: Optional[int] = Field(None, ge=0)
    licenses: Optional[list[License]] = None
    insurance: Optional[Insurance] = None
    serviceArea: Optional[list[str]] = None
    availability: Optional[Availability] = None


class VerificationUpdate(BaseModel):
    isVerified: bool


def _dates_to_datetimes(value):
    """MongoDB cannot store datetime.date, only datetime"""
    if isinstance(value, dt.date) and not isinstance(value, dt.datetime):
        return to_datetime(value)
    if isinstance(value, dict):
        return {k: _dates_to_datetimes(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_dates_to_datetimes(v) for v in value]
    return value


def _merge_availability(current: dict, availability: Availability) -> dict:
    merged = dict(current or default_availability())
    for day in WEEKDAYS:
        value = getattr(availability, day)
        if value is not None:
            merged[day] = value.model_dump()
    return merged


def _get_profile(db: Database, user_id: str) -> dict:
    profile = db[PROVIDER_PROFILES].find_one({"userId": user_id})
    if not profile:
        raise ApiError(404, errors.NOT_FOUND, "Provider profile not found")
    return profile


def _ensure_owner(user_id: str, principal: Principal) -> None:
    if principal.uid != user_id and not principal.is_admin:
        logger.warning(f"🚫 {principal.uid} tried to edit provider profile {user_id}")
        raise ApiError(403, errors.INSUFFICIENT_PERMISSIONS, "Not authorized to update this profile")


@router.get("")
def list_provider_profiles(db: Database = Depends(get_db)):
    profiles = serialize_many(db[PROVIDER_PROFILES].find().sort("createdAt", DESCENDING))
    return {"success": True, "count": len(profiles), "data": profiles}


@router.get("/{user_id}")
def get_provider_profile(user_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": serialize_document(_get_profile(db, user_id))}


@router.post("", status_code=201)
def create_provider_profile(
    data: ProviderProfileCreate,
    principal: Principal = Depends(provider_only),
    db: Database = Depends(get_db),
):
    if db[PROVIDER_PROFILES].find_one({"userId": principal.uid}, {"_id": 1}):
        raise ApiError(400, errors.DUPLICATE, "Provider profile already exists")

    body = data.model_dump(exclude={"availability"})
    availability = (
        _merge_availability(default_availability(), data.availability)
        if data.availability
        else default_availability()
    )

    now = utcnow()
    doc = {
        **_dates_to_datetimes(body),
        "userId": principal.uid,
        "availability": availability,
        "portfolio": [],
        "isVerified": False,
        "verificationDocuments": [],
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        inserted_id = db[PROVIDER_PROFILES].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise ApiError(400, errors.DUPLICATE, "Provider profile already exists")

    logger.info(f"✅ Provider profile created for {principal.uid}")
    return {
        "success": True,
        "data": serialize_document(db[PROVIDER_PROFILES].find_one({"_id": inserted_id})),
    }


@router.put("/{user_id}")
def update_provider_profile(
    user_id: str,
    data: ProviderProfileUpdate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    profile = _get_profile(db, user_id)
    _ensure_owner(user_id, principal)

    updates = _dates_to_datetimes(data.model_dump(exclude_none=True, exclude={"availability"}))
    if data.availability is not None:
        updates["availability"] = _merge_availability(profile.get("availability"), data.availability)
    updates["updatedAt"] = utcnow()

    profile = db[PROVIDER_PROFILES].find_one_and_update(
        {"_id": profile["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    return {"success": True, "data": serialize_document(profile)}


@router.post("/{user_id}/portfolio")
def add_portfolio_item(
    user_id: str,
    item: PortfolioItem,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    if principal.uid != user_id:
        raise ApiError(403, errors.INSUFFICIENT_PERMISSIONS, "Not authorized to update this profile")
    profile = _get_profile(db, user_id)

    now = utcnow()
    profile = db[PROVIDER_PROFILES].find_one_and_update(
        {"_id": profile["_id"]},
        {"$push": {"portfolio": {**item.model_dump(), "date": now}}, "$set": {"updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    return {"success": True, "data": serialize_document(profile)}


@router.put("/{user_id}/verify")
def verify_provider_profile(
    user_id: str,
    data: VerificationUpdate,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    now = utcnow()
    profile = db[PROVIDER_PROFILES].find_one_and_update(
        {"userId": user_id},
        {"$set": {"isVerified": data.isVerified, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    if not profile:
        raise ApiError(404, errors.NOT_FOUND, "Provider profile not found")

    db[USERS].update_one(
        {"firebaseUid": user_id}, {"$set": {"isVerified": data.isVerified, "updatedAt": now}}
    )
    logger.info(f"✅ Provider profile {user_id} verification set to {data.isVerified}")
    return {"success": True, "data": serialize_document(profile)}

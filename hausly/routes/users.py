import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .. import errors
from ..auth import AuthIdentity, Principal, get_current_user, get_token_identity, require_roles
from ..database import get_db
from ..errors import ApiError
from ..firebase import sync_role_claim
from ..models import USERS, Role
from ..shared.validators import validate_email
from ..utils.serialization import serialize_document, serialize_many, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])

admin_only = require_roles(Role.ADMIN)


class UserCreate(BaseModel):
    name: str = Field(..., min_length=1)
    email: Optional[str] = None
    role: Role = Role.CUSTOMER
    phone: str = ""
    address: str = ""
    photoURL: str = ""
    bio: str = ""
    specialties: list[str] = []

    @field_validator("email")
    @classmethod
    def validate_email_field(cls, v: Optional[str]) -> Optional[str]:
        return validate_email(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: Role) -> Role:
        # Admins are promoted by another admin, never self-assigned
        if v == Role.ADMIN:
            raise ValueError("Role must be customer or provider")
        return v


class UserUpdate(BaseModel):
    """Self-editable profile fields. Role, uid, verification and ratings are not here."""

    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    address: Optional[str] = None
    photoURL: Optional[str] = None
    bio: Optional[str] = None
    specialties: Optional[list[str]] = None


class RoleUpdate(BaseModel):
    role: Role


def _find_user(db: Database, firebase_uid: str) -> dict:
    user = db[USERS].find_one({"firebaseUid": firebase_uid})
    if not user:
        raise ApiError(404, errors.USER_NOT_FOUND, "User not found")
    return user


@router.post("", status_code=201)
def create_user(
    data: UserCreate,
    identity: AuthIdentity = Depends(get_token_identity),
    db: Database = Depends(get_db),
):
    """Complete the profile of a freshly signed up Firebase account"""
    logger.info(f"📥 Creating user: {identity.uid} as {data.role.value}")

    if db[USERS].find_one({"firebaseUid": identity.uid}):
        raise ApiError(400, errors.DUPLICATE, "User already exists")

    email = data.email or identity.email
    if not email:
        raise ApiError(400, errors.VALIDATION_ERROR, "Please add an email")

    now = utcnow()
    doc = {
        "firebaseUid": identity.uid,
        "name": data.name.strip(),
        "email": email,
        "role": data.role.value,
        "phone": data.phone,
        "address": data.address,
        "photoURL": data.photoURL,
        "isVerified": False,
        "bio": data.bio,
        "specialties": data.specialties,
        "averageRating": 0,
        "reviewCount": 0,
        "createdAt": now,
        "updatedAt": now,
        "lastLogin": now,
    }
    try:
        inserted_id = db[USERS].insert_one(doc).inserted_id
    except DuplicateKeyError:
        logger.warning(f"⚠️ Duplicate user for {identity.uid} / {email}")
        raise ApiError(400, errors.DUPLICATE, "User already exists")

    logger.info(f"✅ User created: {identity.uid}")
    return serialize_document(db[USERS].find_one({"_id": inserted_id}))


@router.get("/me")
def get_me(principal: Principal = Depends(get_current_user)):
    return serialize_document(principal.user)


@router.put("/me")
def update_me(
    data: UserUpdate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    updates = data.model_dump(exclude_none=True)
    updates["updatedAt"] = utcnow()
    user = db[USERS].find_one_and_update(
        {"firebaseUid": principal.uid},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise ApiError(404, errors.USER_NOT_FOUND, "User not found")
    logger.info(f"✅ Profile updated: {principal.uid}")
    return serialize_document(user)


@router.get("")
def list_users(
    role: Optional[Role] = None,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    query = {"role": role.value} if role else {}
    return serialize_many(db[USERS].find(query).sort("createdAt", -1))


@router.get("/{firebase_uid}")
def get_user(firebase_uid: str, db: Database = Depends(get_db)):
    """Public profile"""
    return serialize_document(_find_user(db, firebase_uid))


@router.put("/{firebase_uid}/role")
def update_user_role(
    firebase_uid: str,
    data: RoleUpdate,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    user = db[USERS].find_one_and_update(
        {"firebaseUid": firebase_uid},
        {"$set": {"role": data.role.value, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise ApiError(404, errors.USER_NOT_FOUND, "User not found")

    logger.info(f"🔄 {principal.uid} changed role of {firebase_uid} to {data.role.value}")
    sync_role_claim(firebase_uid, data.role.value)
    return {"message": "User role updated successfully", "user": serialize_document(user)}


@router.put("/{firebase_uid}/verify")
def verify_provider(
    firebase_uid: str,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    user = db[USERS].find_one_and_update(
        {"firebaseUid": firebase_uid, "role": Role.PROVIDER.value},
        {"$set": {"isVerified": True, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise ApiError(404, errors.USER_NOT_FOUND, "Provider not found")
    logger.info(f"✅ Provider verified: {firebase_uid}")
    return {"message": "Provider verified successfully", "user": serialize_document(user)}

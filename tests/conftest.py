from datetime import datetime, timedelta, timezone
from typing import Optional

import mongomock
import pytest
from fastapi import Depends, Query
from fastapi.security import HTTPAuthorizationCredentials
from fastapi.testclient import TestClient

from hausly import errors
from hausly.auth import AuthIdentity, get_optional_identity, get_token_identity, security
from hausly.database import ensure_indexes, get_db
from hausly.errors import ApiError
from hausly.main import app
from hausly.realtime import ConnectionManager, get_connection_manager, get_socket_identity

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


async def token_identity_override(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> AuthIdentity:
    """Test tokens are the bare uid"""
    if not credentials or not credentials.credentials:
        raise ApiError(401, errors.UNAUTHORIZED, "Not authorized, no token")
    uid = credentials.credentials
    return AuthIdentity(uid=uid, email=f"{uid}@example.com", email_verified=True)


async def optional_identity_override(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[AuthIdentity]:
    if not credentials or not credentials.credentials:
        return None
    return await token_identity_override(credentials)


async def socket_identity_override(token: Optional[str] = Query(None)) -> Optional[AuthIdentity]:
    if not token:
        return None
    return AuthIdentity(uid=token, email=f"{token}@example.com", email_verified=True)


def auth(uid: str) -> dict:
    return {"Authorization": f"Bearer {uid}"}


@pytest.fixture
def db():
    database = mongomock.MongoClient()["hausly_test"]
    ensure_indexes(database)
    return database


@pytest.fixture
def rooms():
    return ConnectionManager()


@pytest.fixture
def client(db, rooms):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_token_identity] = token_identity_override
    app.dependency_overrides[get_optional_identity] = optional_identity_override
    app.dependency_overrides[get_socket_identity] = socket_identity_override
    app.dependency_overrides[get_connection_manager] = lambda: rooms
    # Not used as a context manager so the lifespan (real MongoDB, Firebase) never runs
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db, uid: str, role: str = "customer", name: Optional[str] = None, **extra) -> dict:
    doc = {
        "firebaseUid": uid,
        "name": name or uid.title(),
        "email": f"{uid}@example.com",
        "role": role,
        "phone": "",
        "address": "",
        "photoURL": "",
        "isVerified": False,
        "bio": "",
        "specialties": [],
        "averageRating": 0,
        "reviewCount": 0,
        "createdAt": BASE_TIME,
        "updatedAt": BASE_TIME,
        **extra,
    }
    doc["_id"] = db["users"].insert_one(doc).inserted_id
    return doc


def make_service(
    db,
    provider_id: str = "prov1",
    title: str = "Deep Clean",
    category: str = "Cleaning",
    price: float = 300,
    offset: int = 0,
    **extra,
) -> dict:
    created = BASE_TIME + timedelta(minutes=offset)
    doc = {
        "title": title,
        "description": f"{title} by a professional",
        "price": price,
        "category": category,
        "image": "/images/default-service.jpg",
        "providerId": provider_id,
        "providerName": provider_id.title(),
        "providerPhoto": "",
        "rating": 0,
        "reviewCount": 0,
        "isActive": True,
        "createdAt": created,
        "updatedAt": created,
        **extra,
    }
    doc["_id"] = db["services"].insert_one(doc).inserted_id
    return doc


def make_booking(
    db, service: dict, user_id: str = "cust1", status: str = "pending", offset: int = 0, **extra
) -> dict:
    created = BASE_TIME + timedelta(minutes=offset)
    doc = {
        "serviceId": service["_id"],
        "userId": user_id,
        "userName": user_id.title(),
        "userEmail": f"{user_id}@example.com",
        "providerId": service["providerId"],
        "date": datetime(2025, 1, 10, tzinfo=timezone.utc),
        "time": "10:00",
        "address": "1 Main St",
        "notes": "",
        "status": status,
        "price": service["price"],
        "paymentStatus": "pending",
        "paymentMethod": "",
        "paymentId": "",
        "createdAt": created,
        "updatedAt": created,
        **extra,
    }
    doc["_id"] = db["bookings"].insert_one(doc).inserted_id
    return doc


@pytest.fixture
def marketplace(db):
    """A customer, a provider with one active service, and an admin"""
    customer = make_user(db, "cust1", "customer", name="Casey Customer")
    provider = make_user(db, "prov1", "provider", name="Pat Provider")
    admin = make_user(db, "admin1", "admin", name="Ada Admin")
    service = make_service(db, "prov1", price=300)
    return {"customer": customer, "provider": provider, "admin": admin, "service": service}

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from pymongo import DESCENDING
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .. import errors
from ..auth import Principal, get_current_user
from ..database import get_db
from ..errors import ApiError
from ..models import FAVORITES, SERVICES
from ..shared.validators import to_object_id
from ..utils.serialization import serialize_document, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/favorites", tags=["Favorites"])

SERVICE_SUMMARY_FIELDS = {
    "title": 1,
    "description": 1,
    "price": 1,
    "image": 1,
    "category": 1,
    "providerId": 1,
    "providerName": 1,
    "providerPhoto": 1,
    "rating": 1,
}


class FavoriteCreate(BaseModel):
    serviceId: str


@router.get("")
def list_favorites(
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    favorites = list(db[FAVORITES].find({"userId": principal.uid}).sort("createdAt", DESCENDING))
    services = {
        s["_id"]: s
        for s in db[SERVICES].find(
            {"_id": {"$in": [f["serviceId"] for f in favorites]}}, SERVICE_SUMMARY_FIELDS
        )
    }

    data = []
    for fav in favorites:
        service = services.get(fav["serviceId"])
        if not service:
            # Service was removed after it was favourited
            continue
        data.append(
            serialize_document(
                {
                    "_id": fav["_id"],
                    "userId": fav["userId"],
                    "serviceId": fav["serviceId"],
                    "service": serialize_document(service),
                    "createdAt": fav["createdAt"],
                }
            )
        )
    return {"success": True, "count": len(data), "data": data}


@router.post("", status_code=201)
def add_favorite(
    data: FavoriteCreate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    service_id = to_object_id(data.serviceId, "service ID")
    if not db[SERVICES].find_one({"_id": service_id}, {"_id": 1}):
        raise ApiError(404, errors.SERVICE_NOT_FOUND, "Service not found")

    if db[FAVORITES].find_one({"userId": principal.uid, "serviceId": service_id}, {"_id": 1}):
        raise ApiError(400, errors.DUPLICATE, "Service already in favorites")

    try:
        inserted_id = db[FAVORITES].insert_one(
            {"userId": principal.uid, "serviceId": service_id, "createdAt": utcnow()}
        ).inserted_id
    except DuplicateKeyError:
        raise ApiError(400, errors.DUPLICATE, "Service already in favorites")

    logger.info(f"❤️ {principal.uid} favourited service {data.serviceId}")
    return {"success": True, "data": serialize_document(db[FAVORITES].find_one({"_id": inserted_id}))}


@router.delete("/{service_id}")
def remove_favorite(
    service_id: str,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    result = db[FAVORITES].delete_one(
        {"userId": principal.uid, "serviceId": to_object_id(service_id, "service ID")}
    )
    if result.deleted_count == 0:
        raise ApiError(404, errors.NOT_FOUND, "Favorite not found")
    return {"success": True, "data": {}}


@router.get("/check/{service_id}")
def check_favorite(
    service_id: str,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    favorite = db[FAVORITES].find_one(
        {"userId": principal.uid, "serviceId": to_object_id(service_id, "service ID")}, {"_id": 1}
    )
    return {"success": True, "isFavorite": favorite is not None}

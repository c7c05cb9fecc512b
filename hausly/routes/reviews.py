import logging
from typing import Optional

from bson import ObjectId
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from pymongo import DESCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .. import errors
from ..auth import Principal, get_current_user
from ..database import get_db
from ..domain.services.repository import ServiceRepository
from ..errors import ApiError
from ..models import BOOKINGS, REVIEWS, USERS, BookingStatus
from ..shared.validators import to_object_id
from ..utils.serialization import serialize_document, serialize_many, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reviews", tags=["Reviews"])


class ReviewCreate(BaseModel):
    bookingId: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = Field(..., min_length=1, max_length=1000)


class ReviewUpdate(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, min_length=1, max_length=1000)


class ReviewResponseCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=1000)


def _average(ratings: list) -> float:
    return sum(ratings) / len(ratings) if ratings else 0


def recompute_ratings(db: Database, service_id: ObjectId, provider_id: str) -> None:
    """Refresh the denormalised rating aggregates on the Service and the provider User"""
    service_ratings = [r["rating"] for r in db[REVIEWS].find({"serviceId": service_id}, {"rating": 1})]
    ServiceRepository.set_rating(db, service_id, _average(service_ratings), len(service_ratings))

    provider_ratings = [
        r["rating"] for r in db[REVIEWS].find({"providerId": provider_id}, {"rating": 1})
    ]
    db[USERS].update_one(
        {"firebaseUid": provider_id},
        {
            "$set": {
                "averageRating": _average(provider_ratings),
                "reviewCount": len(provider_ratings),
                "updatedAt": utcnow(),
            }
        },
    )
    logger.info(
        f"📊 Ratings recomputed: service {service_id} ({len(service_ratings)} reviews), "
        f"provider {provider_id} ({len(provider_ratings)} reviews)"
    )


def _get_review(db: Database, review_id: str) -> dict:
    review = db[REVIEWS].find_one({"_id": to_object_id(review_id, "review ID")})
    if not review:
        raise ApiError(404, errors.NOT_FOUND, "Review not found")
    return review


def _list_response(reviews) -> dict:
    data = serialize_many(reviews)
    return {"success": True, "count": len(data), "data": data}


@router.get("")
def list_reviews(
    serviceId: Optional[str] = Query(None),
    providerId: Optional[str] = Query(None),
    db: Database = Depends(get_db),
):
    query: dict = {}
    if serviceId:
        query["serviceId"] = to_object_id(serviceId, "service ID")
    if providerId:
        query["providerId"] = providerId
    return _list_response(db[REVIEWS].find(query).sort("createdAt", DESCENDING))


@router.get("/user")
def list_my_reviews(
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    return _list_response(db[REVIEWS].find({"userId": principal.uid}).sort("createdAt", DESCENDING))


@router.get("/{review_id}")
def get_review(review_id: str, db: Database = Depends(get_db)):
    return {"success": True, "data": serialize_document(_get_review(db, review_id))}


@router.post("", status_code=201)
def create_review(
    data: ReviewCreate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Review a completed booking. One review per booking."""
    booking = db[BOOKINGS].find_one({"_id": to_object_id(data.bookingId, "booking ID")})
    if not booking:
        raise ApiError(404, errors.BOOKING_NOT_FOUND, "Booking not found")

    if booking.get("userId") != principal.uid:
        raise ApiError(403, errors.NOT_BOOKING_PARTY, "Not authorized to review this booking")

    if booking.get("status") != BookingStatus.COMPLETED.value:
        raise ApiError(
            400, errors.REVIEW_NOT_ALLOWED, "Cannot review a booking that is not completed"
        )

    if db[REVIEWS].find_one({"bookingId": booking["_id"]}):
        raise ApiError(400, errors.DUPLICATE, "Review already exists for this booking")

    now = utcnow()
    doc = {
        "bookingId": booking["_id"],
        "serviceId": booking["serviceId"],
        "userId": principal.uid,
        "userName": principal.name,
        "userPhoto": principal.photo_url,
        "providerId": booking["providerId"],
        "rating": data.rating,
        "comment": data.comment,
        "isVerified": True,
        "createdAt": now,
        "updatedAt": now,
    }
    try:
        inserted_id = db[REVIEWS].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise ApiError(400, errors.DUPLICATE, "Review already exists for this booking")

    recompute_ratings(db, booking["serviceId"], booking["providerId"])
    logger.info(f"⭐ Review created for booking {data.bookingId} by {principal.uid}")
    return {"success": True, "data": serialize_document(db[REVIEWS].find_one({"_id": inserted_id}))}


@router.put("/{review_id}")
def update_review(
    review_id: str,
    data: ReviewUpdate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    review = _get_review(db, review_id)
    if review.get("userId") != principal.uid:
        raise ApiError(403, errors.INSUFFICIENT_PERMISSIONS, "Not authorized to update this review")

    updates = data.model_dump(exclude_none=True)
    updates["updatedAt"] = utcnow()
    review = db[REVIEWS].find_one_and_update(
        {"_id": review["_id"]}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    recompute_ratings(db, review["serviceId"], review["providerId"])
    return {"success": True, "data": serialize_document(review)}


@router.put("/{review_id}/respond")
def respond_to_review(
    review_id: str,
    data: ReviewResponseCreate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    review = _get_review(db, review_id)
    if review.get("providerId") != principal.uid:
        raise ApiError(
            403, errors.INSUFFICIENT_PERMISSIONS, "Not authorized to respond to this review"
        )

    now = utcnow()
    review = db[REVIEWS].find_one_and_update(
        {"_id": review["_id"]},
        {"$set": {"response": {"text": data.text, "date": now}, "updatedAt": now}},
        return_document=ReturnDocument.AFTER,
    )
    return {"success": True, "data": serialize_document(review)}


@router.delete("/{review_id}")
def delete_review(
    review_id: str,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    review = _get_review(db, review_id)
    if review.get("userId") != principal.uid and not principal.is_admin:
        raise ApiError(403, errors.INSUFFICIENT_PERMISSIONS, "Not authorized to delete this review")

    db[REVIEWS].delete_one({"_id": review["_id"]})
    recompute_ratings(db, review["serviceId"], review["providerId"])
    logger.info(f"🗑️ Review {review_id} deleted by {principal.uid}")
    return {"success": True, "data": {}}

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.database import Database

from .. import errors
from ..auth import Principal, get_current_user
from ..database import get_db
from ..domain.bookings.lifecycle import is_party
from ..errors import ApiError
from ..models import BOOKINGS, MESSAGES, TERMINAL_STATUSES
from ..realtime import ConnectionManager, get_connection_manager
from ..shared.validators import to_object_id
from ..utils.serialization import serialize_document, serialize_many, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])


class MessageCreate(BaseModel):
    bookingId: str
    recipientId: str = Field(..., min_length=1)
    content: str
    attachments: list[str] = []

    @field_validator("content")
    @classmethod
    def validate_content(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Message content is required")
        return v


def _get_booking_for_party(
    db: Database, booking_id: str, principal: Principal, allow_admin: bool = False
) -> dict:
    """Admins may read a thread, only the two parties may write to it"""
    booking = db[BOOKINGS].find_one({"_id": to_object_id(booking_id, "booking ID")})
    if not booking:
        raise ApiError(404, errors.BOOKING_NOT_FOUND, "Booking not found")
    if allow_admin and principal.is_admin:
        return booking
    if not is_party(booking, principal):
        raise ApiError(
            403, errors.NOT_BOOKING_PARTY, "Not authorized to access messages for this booking"
        )
    return booking


@router.post("", status_code=201)
async def send_message(
    data: MessageCreate,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
    rooms: ConnectionManager = Depends(get_connection_manager),
):
    booking = _get_booking_for_party(db, data.bookingId, principal)

    other_party = (
        booking.get("providerId") if principal.uid == booking.get("userId") else booking.get("userId")
    )
    if data.recipientId != other_party:
        raise ApiError(
            400, errors.VALIDATION_ERROR, "Recipient must be the other party of the booking"
        )

    if booking.get("status") in TERMINAL_STATUSES:
        raise ApiError(
            409, errors.BOOKING_CLOSED, f"Cannot send messages on a {booking['status']} booking"
        )

    now = utcnow()
    doc = {
        "bookingId": booking["_id"],
        "senderId": principal.uid,
        "recipientId": data.recipientId,
        "content": data.content,
        "isRead": False,
        "attachments": data.attachments,
        "createdAt": now,
        "updatedAt": now,
    }
    inserted_id = db[MESSAGES].insert_one(doc).inserted_id
    message = serialize_document(db[MESSAGES].find_one({"_id": inserted_id}))

    # Only persisted messages reach the room
    await rooms.broadcast(data.bookingId, "message_received", message)
    logger.info(f"💬 Message {message['id']} sent on booking {data.bookingId}")
    return {"success": True, "data": message}


@router.get("/conversations")
def get_conversations(
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    """Per booking: last message, unread count and total, most recent first"""
    uid = principal.uid
    bookings = db[BOOKINGS].find({"$or": [{"userId": uid}, {"providerId": uid}]})

    conversations = []
    for booking in bookings:
        last = db[MESSAGES].find_one(
            {"bookingId": booking["_id"]}, sort=[("createdAt", DESCENDING), ("_id", DESCENDING)]
        )
        unread = db[MESSAGES].count_documents(
            {"bookingId": booking["_id"], "recipientId": uid, "isRead": False}
        )
        total = db[MESSAGES].count_documents({"bookingId": booking["_id"]})

        last_message = None
        if last:
            last_message = {
                "id": last["_id"],
                "content": last["content"],
                "senderId": last["senderId"],
                "recipientId": last["recipientId"],
                "isRead": last["isRead"],
                "createdAt": last["createdAt"],
                "isFromCurrentUser": last["senderId"] == uid,
            }

        conversations.append(
            {
                "bookingId": booking["_id"],
                "booking": serialize_document(booking),
                "lastMessage": last_message,
                "unreadCount": unread,
                "totalMessages": total,
                "updatedAt": last["createdAt"] if last else booking.get("updatedAt"),
            }
        )

    conversations.sort(key=lambda c: c["updatedAt"], reverse=True)
    data = serialize_many(conversations)
    return {"success": True, "count": len(data), "data": data}


@router.get("/unread")
def get_unread_count(
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    count = db[MESSAGES].count_documents({"recipientId": principal.uid, "isRead": False})
    return {"success": True, "data": {"unreadCount": count}}


@router.get("/booking/{booking_id}")
async def get_booking_messages(
    booking_id: str,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
    rooms: ConnectionManager = Depends(get_connection_manager),
):
    """Chronological thread for one booking. Marks the caller's unread messages as read."""
    booking = _get_booking_for_party(db, booking_id, principal, allow_admin=True)

    unread_ids = [
        m["_id"]
        for m in db[MESSAGES].find(
            {"bookingId": booking["_id"], "recipientId": principal.uid, "isRead": False}, {"_id": 1}
        )
    ]
    if unread_ids:
        db[MESSAGES].update_many(
            {"_id": {"$in": unread_ids}}, {"$set": {"isRead": True, "updatedAt": utcnow()}}
        )
        await rooms.broadcast(
            booking_id,
            "messages_marked_read",
            {
                "bookingId": booking_id,
                "readBy": principal.uid,
                "messageIds": [str(i) for i in unread_ids],
                "count": len(unread_ids),
            },
        )

    messages = serialize_many(
        db[MESSAGES]
        .find({"bookingId": booking["_id"]})
        .sort([("createdAt", ASCENDING), ("_id", ASCENDING)])
    )
    return {"success": True, "count": len(messages), "data": messages}


@router.put("/{message_id}/read")
def mark_message_read(
    message_id: str,
    principal: Principal = Depends(get_current_user),
    db: Database = Depends(get_db),
):
    message = db[MESSAGES].find_one({"_id": to_object_id(message_id, "message ID")})
    if not message:
        raise ApiError(404, errors.NOT_FOUND, "Message not found")
    if message.get("recipientId") != principal.uid:
        raise ApiError(
            403, errors.INSUFFICIENT_PERMISSIONS, "Not authorized to mark this message as read"
        )

    message = db[MESSAGES].find_one_and_update(
        {"_id": message["_id"]},
        {"$set": {"isRead": True, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return {"success": True, "data": serialize_document(message)}

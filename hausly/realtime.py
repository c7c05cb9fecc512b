"""
Booking chat side channel over WebSockets.

Frames are JSON objects {"event": ..., "data": ...}. Clients join one room
per booking; the REST message routes broadcast into those rooms after a
successful write. Relayed socket frames are hints only and clients
reconcile against the persisted message list.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect
from pymongo.database import Database

from .auth import AuthIdentity, Principal, identity_from_claims, load_principal, verify_firebase_token
from .database import get_db
from .domain.bookings.lifecycle import is_party
from .errors import ApiError
from .models import BOOKINGS
from .shared.validators import is_object_id, to_object_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

# Application close codes
CLOSE_UNAUTHORIZED = 4401
CLOSE_USER_NOT_FOUND = 4404


class ConnectionManager:
    """In-process registry of booking rooms"""

    def __init__(self) -> None:
        self.rooms: dict[str, list[WebSocket]] = {}

    def join(self, room: str, ws: WebSocket) -> None:
        members = self.rooms.setdefault(room, [])
        if not any(m is ws for m in members):
            members.append(ws)

    def leave(self, room: str, ws: WebSocket) -> None:
        members = [m for m in self.rooms.get(room, []) if m is not ws]
        if members:
            self.rooms[room] = members
        else:
            self.rooms.pop(room, None)

    def disconnect(self, ws: WebSocket) -> None:
        for room in list(self.rooms):
            self.leave(room, ws)

    def in_room(self, room: str, ws: WebSocket) -> bool:
        return any(m is ws for m in self.rooms.get(room, []))

    async def broadcast(
        self, room: str, event: str, data: Any, exclude: Optional[WebSocket] = None
    ) -> int:
        """Send one frame to every member of room except exclude. Returns deliveries."""
        payload = {"event": event, "data": data}
        dead: list[WebSocket] = []
        delivered = 0
        for ws in list(self.rooms.get(room, [])):
            if ws is exclude:
                continue
            try:
                await ws.send_json(payload)
                delivered += 1
            except Exception as e:
                logger.warning(f"⚠️ Dropping dead socket in room {room}: {type(e).__name__}")
                dead.append(ws)
        for ws in dead:
            self.disconnect(ws)
        return delivered


manager = ConnectionManager()


def get_connection_manager() -> ConnectionManager:
    return manager


async def get_socket_identity(token: Optional[str] = Query(None)) -> Optional[AuthIdentity]:
    """Verify the ID token passed as ?token= on the handshake"""
    if not token:
        return None
    try:
        claims = await verify_firebase_token(token)
        return identity_from_claims(claims)
    except ApiError as e:
        logger.warning(f"🚫 Socket handshake rejected: {e.message}")
        return None


def _booking_id_from(data: Any) -> Optional[str]:
    if isinstance(data, dict):
        data = data.get("bookingId")
    return data if is_object_id(data) else None


async def _send_error(ws: WebSocket, message: str) -> None:
    await ws.send_json({"event": "error", "data": {"message": message}})


async def _join_booking_room(
    ws: WebSocket, data: Any, principal: Principal, db: Database, rooms: ConnectionManager
) -> None:
    booking_id = _booking_id_from(data)
    if not booking_id:
        await _send_error(ws, "Invalid booking ID format")
        return

    booking = db[BOOKINGS].find_one({"_id": to_object_id(booking_id)})
    if not booking:
        await _send_error(ws, "Booking not found")
        return
    if not principal.is_admin and not is_party(booking, principal):
        logger.warning(f"🚫 {principal.uid} tried to join room of booking {booking_id}")
        await _send_error(ws, "Not authorized to join this booking")
        return

    rooms.join(booking_id, ws)
    logger.info(f"🔌 {principal.uid} joined booking room {booking_id}")
    await ws.send_json({"event": "joined_booking_room", "data": {"bookingId": booking_id}})


async def _relay(
    ws: WebSocket, event: str, data: Any, rooms: ConnectionManager
) -> None:
    booking_id = _booking_id_from(data)
    if not booking_id or not rooms.in_room(booking_id, ws):
        await _send_error(ws, "Join the booking room first")
        return
    if not isinstance(data, dict):
        data = {}

    if event == "new_message":
        await rooms.broadcast(booking_id, "message_received", data.get("message"), exclude=ws)
    else:
        await rooms.broadcast(
            booking_id,
            "user_typing",
            {"isTyping": bool(data.get("isTyping")), "userName": data.get("userName", "")},
            exclude=ws,
        )


@router.websocket("/ws")
async def booking_socket(
    websocket: WebSocket,
    identity: Optional[AuthIdentity] = Depends(get_socket_identity),
    db: Database = Depends(get_db),
    rooms: ConnectionManager = Depends(get_connection_manager),
):
    if identity is None:
        await websocket.close(code=CLOSE_UNAUTHORIZED)
        return

    try:
        principal = load_principal(db, identity)
    except ApiError:
        await websocket.close(code=CLOSE_USER_NOT_FOUND)
        return

    await websocket.accept()
    logger.info(f"🔌 Socket connected: {principal.uid}")

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                logger.warning(f"⚠️ Non-JSON frame from {principal.uid}")
                frame = None
            if not isinstance(frame, dict):
                await _send_error(websocket, "Frames must be JSON objects")
                continue

            event = frame.get("event")
            data = frame.get("data")

            if event == "join_booking_room":
                await _join_booking_room(websocket, data, principal, db, rooms)
            elif event == "leave_booking_room":
                booking_id = _booking_id_from(data)
                if booking_id:
                    rooms.leave(booking_id, websocket)
            elif event in ("new_message", "typing"):
                await _relay(websocket, event, data, rooms)
            else:
                await _send_error(websocket, f"Unknown event: {event}")
    except WebSocketDisconnect:
        logger.info(f"🔌 Socket disconnected: {principal.uid}")
    finally:
        rooms.disconnect(websocket)

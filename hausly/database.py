import logging
from typing import Optional

from pymongo import ASCENDING, DESCENDING, MongoClient, monitoring
from pymongo.database import Database
from pymongo.errors import PyMongoError

from .config import (
    DATABASE_NAME,
    DB_SERVER_SELECTION_TIMEOUT_MS,
    DB_SLOW_QUERY_THRESHOLD,
    MONGO_URI,
)

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None


class SlowCommandLogger(monitoring.CommandListener):
    """Log MongoDB commands slower than DB_SLOW_QUERY_THRESHOLD seconds"""

    def started(self, event):
        pass

    def succeeded(self, event):
        total = event.duration_micros / 1_000_000
        if total > DB_SLOW_QUERY_THRESHOLD:
            logger.warning(
                f"🐌 Slow command ({total:.2f}s): {event.command_name} on {event.database_name}"
            )

    def failed(self, event):
        logger.error(f"❌ Command {event.command_name} failed: {event.failure}")


def get_client() -> MongoClient:
    global _client
    if _client is None:
        try:
            _client = MongoClient(
                MONGO_URI,
                serverSelectionTimeoutMS=DB_SERVER_SELECTION_TIMEOUT_MS,
                event_listeners=[SlowCommandLogger()],
            )
            logger.info("✅ MongoDB client created successfully")
        except PyMongoError as e:
            logger.error(f"❌ Failed to create MongoDB client: {e}")
            raise
    return _client


def get_db() -> Database:
    return get_client()[DATABASE_NAME]


def ping(db: Database) -> bool:
    """Return True when the server answers a ping"""
    try:
        db.client.admin.command("ping")
        return True
    except PyMongoError as e:
        logger.warning(f"⚠️ MongoDB ping failed: {e}")
        return False


def ensure_indexes(db: Database) -> None:
    db["users"].create_index("firebaseUid", unique=True)
    db["users"].create_index("email", unique=True)

    db["services"].create_index("category")
    db["services"].create_index("providerId")
    db["services"].create_index([("createdAt", DESCENDING)])
    db["services"].create_index([("category", ASCENDING), ("createdAt", DESCENDING)])
    db["services"].create_index([("providerId", ASCENDING), ("category", ASCENDING)])

    db["bookings"].create_index("userId")
    db["bookings"].create_index("providerId")
    db["bookings"].create_index("serviceId")

    db["messages"].create_index([("bookingId", ASCENDING), ("createdAt", DESCENDING)])
    db["messages"].create_index(
        [("senderId", ASCENDING), ("recipientId", ASCENDING), ("createdAt", DESCENDING)]
    )

    db["reviews"].create_index("bookingId", unique=True)
    db["favorites"].create_index([("userId", ASCENDING), ("serviceId", ASCENDING)], unique=True)
    db["provider_profiles"].create_index("userId", unique=True)
    db["categories"].create_index("name", unique=True)
    logger.info("📊 MongoDB indexes ensured")

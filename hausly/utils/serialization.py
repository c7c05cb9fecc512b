from datetime import date, datetime, timezone
from typing import Any, Optional

from bson import ObjectId


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_datetime(value: date) -> datetime:
    """MongoDB stores datetimes only; promote a calendar date to UTC midnight"""
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _convert(value: Any) -> Any:
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()
    if isinstance(value, dict):
        return {k: _convert(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_convert(v) for v in value]
    return value


def serialize_document(doc: Optional[dict]) -> Optional[dict]:
    """
    Convert a stored document to its API shape.

    The Mongo `_id` is exposed as a string `id` and never both, so callers
    downstream only ever key on `id`. Nested ObjectIds and datetimes are
    converted to strings.
    """
    if not doc:
        return doc
    d = dict(doc)
    if "_id" in d:
        d["id"] = str(d.pop("_id"))
    d.pop("__v", None)
    return {k: _convert(v) for k, v in d.items()}


def serialize_many(docs) -> list[dict]:
    return [serialize_document(d) for d in docs]

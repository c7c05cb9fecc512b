import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from .. import errors
from ..auth import Principal, require_roles
from ..database import get_db
from ..errors import ApiError
from ..models import CATEGORIES, DEFAULT_CATEGORY_IMAGE, Role
from ..shared.validators import to_object_id
from ..utils.serialization import serialize_document, serialize_many, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/categories", tags=["Categories"])

admin_only = require_roles(Role.ADMIN)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    description: str = Field("", max_length=500)
    icon: str = "fa-tools"
    image: str = DEFAULT_CATEGORY_IMAGE
    isActive: bool = True
    order: int = 0


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    description: Optional[str] = Field(None, max_length=500)
    icon: Optional[str] = None
    image: Optional[str] = None
    isActive: Optional[bool] = None
    order: Optional[int] = None


def _name_taken(db: Database, name: str, exclude_id=None) -> bool:
    query: dict = {"name": name}
    if exclude_id is not None:
        query["_id"] = {"$ne": exclude_id}
    return db[CATEGORIES].find_one(query, {"_id": 1}) is not None


@router.get("")
def list_categories(db: Database = Depends(get_db)):
    categories = serialize_many(
        db[CATEGORIES].find({"isActive": True}).sort([("order", ASCENDING), ("name", ASCENDING)])
    )
    return {"success": True, "count": len(categories), "data": categories}


@router.get("/{category_id}")
def get_category(category_id: str, db: Database = Depends(get_db)):
    category = db[CATEGORIES].find_one({"_id": to_object_id(category_id, "category ID")})
    if not category:
        raise ApiError(404, errors.NOT_FOUND, "Category not found")
    return {"success": True, "data": serialize_document(category)}


@router.post("", status_code=201)
def create_category(
    data: CategoryCreate,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    name = data.name.strip()
    if _name_taken(db, name):
        raise ApiError(400, errors.DUPLICATE, "Category already exists")

    now = utcnow()
    doc = {**data.model_dump(), "name": name, "createdAt": now, "updatedAt": now}
    try:
        inserted_id = db[CATEGORIES].insert_one(doc).inserted_id
    except DuplicateKeyError:
        raise ApiError(400, errors.DUPLICATE, "Category already exists")

    logger.info(f"✅ Category created: {name}")
    return {"success": True, "data": serialize_document(db[CATEGORIES].find_one({"_id": inserted_id}))}


@router.put("/{category_id}")
def update_category(
    category_id: str,
    data: CategoryUpdate,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    oid = to_object_id(category_id, "category ID")
    updates = data.model_dump(exclude_none=True)
    if "name" in updates:
        updates["name"] = updates["name"].strip()
        if _name_taken(db, updates["name"], exclude_id=oid):
            raise ApiError(400, errors.DUPLICATE, "Category already exists")
    updates["updatedAt"] = utcnow()

    category = db[CATEGORIES].find_one_and_update(
        {"_id": oid}, {"$set": updates}, return_document=ReturnDocument.AFTER
    )
    if not category:
        raise ApiError(404, errors.NOT_FOUND, "Category not found")
    return {"success": True, "data": serialize_document(category)}


@router.delete("/{category_id}")
def delete_category(
    category_id: str,
    principal: Principal = Depends(admin_only),
    db: Database = Depends(get_db),
):
    result = db[CATEGORIES].delete_one({"_id": to_object_id(category_id, "category ID")})
    if result.deleted_count == 0:
        raise ApiError(404, errors.NOT_FOUND, "Category not found")
    logger.info(f"🗑️ Category {category_id} deleted by {principal.uid}")
    return {"success": True, "data": {}}

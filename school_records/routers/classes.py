# school_records/routers/classes.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from school_records.routers.deps import after_write, cached_query, get_api_cache, run_query
from school_records.services import classes as svc
from school_records.utils.api_cache import EntryCache, cache_keys

router = APIRouter(prefix="/api/classes", tags=["classes"])


class ClassCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    level: str = Field(..., min_length=1, max_length=50)
    establishment_id: int


class ClassUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    level: Optional[str] = Field(None, min_length=1, max_length=50)
    establishment_id: Optional[int] = None


@router.get("")
async def list_classes(
    request: Request,
    establishment_id: Optional[int] = None,
    cache: EntryCache = Depends(get_api_cache),
):
    """All classes, or the classes of one establishment, with enrolment counts."""
    key = (
        cache_keys.classes_by_establishment(establishment_id)
        if establishment_id is not None
        else cache_keys.ALL_CLASSES
    )
    data = await cached_query(request, cache, key, svc.list_classes, establishment_id)
    return {"success": True, "data": data}


@router.post("")
async def create_class(payload: ClassCreate, request: Request, cache: EntryCache = Depends(get_api_cache)):
    data = await run_query(svc.create_class, payload.model_dump())
    after_write(request, cache, "class")
    return {"success": True, "data": data, "message": "Class created"}


@router.get("/{class_id}")
async def get_class(class_id: int, request: Request, cache: EntryCache = Depends(get_api_cache)):
    data = await cached_query(request, cache, cache_keys.school_class(class_id), svc.get_class, class_id)
    return {"success": True, "data": data}


@router.put("/{class_id}")
async def update_class(
    class_id: int,
    payload: ClassUpdate,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    data = await run_query(svc.update_class, class_id, changes)
    after_write(request, cache, "class")
    return {"success": True, "data": data, "message": "Class updated"}


@router.delete("/{class_id}")
async def delete_class(class_id: int, request: Request, cache: EntryCache = Depends(get_api_cache)):
    await run_query(svc.delete_class, class_id)
    after_write(request, cache, "class")
    return {"success": True, "message": "Class deleted"}

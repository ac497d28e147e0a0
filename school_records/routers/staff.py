# school_records/routers/staff.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field, ValidationError, field_validator

from school_records.db.models import StaffRole
from school_records.routers.deps import (
    after_write,
    cached_query,
    enforce_rate_limit,
    get_api_cache,
    run_query,
    strip_required,
)
from school_records.services import staff as svc
from school_records.utils.api_cache import EntryCache, cache_keys

router = APIRouter(prefix="/api/staff", tags=["staff"])

SortField = Literal["created_at", "last_name", "first_name", "role", "position"]


# --------- Schemas ---------

class StaffCreate(BaseModel):
    last_name: str = Field(..., min_length=1, max_length=100)
    first_name: str = Field(..., min_length=1, max_length=100)
    role: StaffRole
    position: str = Field(..., min_length=1, max_length=100)
    establishment_id: int
    email: Optional[str] = None
    phone: Optional[str] = None
    photo: Optional[str] = None
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    nationality: Optional[str] = None

    @field_validator("last_name", "first_name", "position")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_required(v)


class StaffUpdate(BaseModel):
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    role: Optional[StaffRole] = None
    position: Optional[str] = Field(None, min_length=1, max_length=100)
    establishment_id: Optional[int] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    photo: Optional[str] = None
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    nationality: Optional[str] = None

    @field_validator("last_name", "first_name", "position")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_required(v)


def _list_key(page, limit, establishment_id, role, search, sort_by, sort_order) -> str:
    default_view = page == 1 and limit == 50 and sort_by == "created_at" and sort_order == "desc"
    if default_view and not role and not search:
        if establishment_id is None:
            return cache_keys.ALL_STAFF
        return cache_keys.staff_by_establishment(establishment_id)
    return cache_keys.staff_page(
        page=page,
        limit=limit,
        etab=establishment_id,
        role=role,
        search=search,
        sort=f"{sort_by}:{sort_order}",
    )


# --------- Routes ---------

@router.get("")
async def list_staff(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    establishment_id: Optional[int] = None,
    role: Optional[StaffRole] = None,
    search: Optional[str] = Query(None, max_length=100),
    sort_by: SortField = "created_at",
    sort_order: Literal["asc", "desc"] = "desc",
    cache: EntryCache = Depends(get_api_cache),
):
    """Paginated staff list with establishment, filters and name/position search."""
    enforce_rate_limit(request)
    search = (search or "").strip() or None
    key = _list_key(page, limit, establishment_id, role, search, sort_by, sort_order)
    result = await cached_query(
        request,
        cache,
        key,
        svc.list_staff,
        page=page,
        limit=limit,
        establishment_id=establishment_id,
        role=role,
        search=search,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    meta = dict(result["meta"])
    meta.update({"establishment_filter": establishment_id, "role_filter": role, "search": search})
    return {"success": True, "data": result["items"], "meta": meta}


@router.post("", status_code=201)
async def create_staff_member(payload: StaffCreate, request: Request, cache: EntryCache = Depends(get_api_cache)):
    enforce_rate_limit(request, sensitive=True)
    data = await run_query(svc.create_staff_member, payload.model_dump())
    after_write(request, cache, "staff")
    return {"success": True, "data": data, "message": "Staff member created"}


@router.post("/bulk")
async def bulk_import(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    cache: EntryCache = Depends(get_api_cache),
):
    """Import up to 500 staff members in one request."""
    enforce_rate_limit(request, sensitive=True)
    rows = payload.get("staff")
    if not isinstance(rows, list) or not rows:
        raise HTTPException(status_code=400, detail="The staff array is required and must not be empty")
    if len(rows) > svc.MAX_BULK_ROWS:
        raise HTTPException(status_code=400, detail=f"At most {svc.MAX_BULK_ROWS} staff members per import")

    valid: List[Tuple[int, Dict[str, Any]]] = []
    errors: List[Dict[str, Any]] = []
    for index, raw in enumerate(rows):
        try:
            valid.append((index, StaffCreate.model_validate(raw).model_dump()))
        except ValidationError as e:
            msgs = ", ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            errors.append({"index": index, "error": f"Invalid data: {msgs}", "row": raw})

    report = await run_query(svc.bulk_import, valid, errors, len(rows))
    if report["imported"]:
        after_write(request, cache, "staff")
    return {
        "success": True,
        "data": report,
        "message": f"Import finished: {report['imported']}/{len(rows)} staff members imported",
    }


@router.get("/{staff_id}")
async def get_staff_member(staff_id: int, request: Request, cache: EntryCache = Depends(get_api_cache)):
    data = await cached_query(request, cache, cache_keys.staff_member(staff_id), svc.get_staff_member, staff_id)
    return {"success": True, "data": data}


@router.put("/{staff_id}")
async def update_staff_member(
    staff_id: int,
    payload: StaffUpdate,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    data = await run_query(svc.update_staff_member, staff_id, changes)
    after_write(request, cache, "staff")
    return {"success": True, "data": data, "message": "Staff member updated"}


@router.delete("/{staff_id}")
async def delete_staff_member(staff_id: int, request: Request, cache: EntryCache = Depends(get_api_cache)):
    await run_query(svc.delete_staff_member, staff_id)
    after_write(request, cache, "staff")
    return {"success": True, "message": "Staff member deleted"}

# school_records/routers/students.py
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Literal, Optional, Tuple

from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import BaseModel, Field, ValidationError, field_validator

from school_records.routers.deps import (
    after_write,
    cached_query,
    enforce_rate_limit,
    get_api_cache,
    run_query,
    strip_required,
)
from school_records.services import students as svc
from school_records.utils.api_cache import EntryCache, cache_keys

router = APIRouter(prefix="/api/students", tags=["students"])


# --------- Schemas ---------

class StudentCreate(BaseModel):
    last_name: str = Field(..., min_length=1, max_length=100)
    first_name: str = Field(..., min_length=1, max_length=100)
    birth_date: date
    birth_place: str = ""
    nationality: str = ""
    sex: Literal["M", "F"] = "M"
    photo: Optional[str] = None
    class_id: int

    @field_validator("last_name", "first_name")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_required(v)


class StudentUpdate(BaseModel):
    last_name: Optional[str] = Field(None, min_length=1, max_length=100)
    first_name: Optional[str] = Field(None, min_length=1, max_length=100)
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    nationality: Optional[str] = None
    sex: Optional[Literal["M", "F"]] = None
    photo: Optional[str] = None
    class_id: Optional[int] = None

    @field_validator("last_name", "first_name")
    @classmethod
    def _strip(cls, v: Optional[str]) -> Optional[str]:
        return strip_required(v)


def _validate_rows(raw_rows: List[Any]) -> Tuple[List[Tuple[int, Dict[str, Any]]], List[Dict[str, Any]]]:
    valid: List[Tuple[int, Dict[str, Any]]] = []
    errors: List[Dict[str, Any]] = []
    for index, raw in enumerate(raw_rows):
        try:
            row = StudentCreate.model_validate(raw)
        except ValidationError as e:
            msgs = ", ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            errors.append({"index": index, "error": f"Invalid data: {msgs}", "row": raw})
            continue
        valid.append((index, row.model_dump()))
    return valid, errors


# --------- Routes ---------

@router.get("")
async def list_students(
    request: Request,
    class_id: Optional[int] = None,
    establishment_id: Optional[int] = None,
    cache: EntryCache = Depends(get_api_cache),
):
    """
    Students with their class and establishment.
    - class_id: only this class
    - establishment_id: only classes of this establishment
    Both filters can be combined.
    """
    key = cache_keys.students(class_id=class_id, establishment_id=establishment_id)
    data = await cached_query(request, cache, key, svc.list_students, class_id, establishment_id)
    return {
        "success": True,
        "data": data,
        "meta": {
            "total": len(data),
            "class_filter": class_id,
            "establishment_filter": establishment_id,
        },
    }


@router.post("")
async def create_student(payload: StudentCreate, request: Request, cache: EntryCache = Depends(get_api_cache)):
    data = await run_query(svc.create_student, payload.model_dump())
    after_write(request, cache, "student")
    return {"success": True, "data": data, "message": "Student created"}


@router.get("/bulk/template")
def bulk_template():
    return {"success": True, "data": svc.IMPORT_TEMPLATE}


@router.post("/bulk")
async def bulk_import(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    cache: EntryCache = Depends(get_api_cache),
):
    """Import up to 1000 students; invalid rows are reported, valid ones inserted."""
    enforce_rate_limit(request, sensitive=True)
    rows = payload.get("students")
    if not isinstance(rows, list) or not rows:
        raise HTTPException(status_code=400, detail="The students array is required and must not be empty")
    if len(rows) > svc.MAX_BULK_ROWS:
        raise HTTPException(status_code=400, detail=f"At most {svc.MAX_BULK_ROWS} students per import")

    valid, errors = _validate_rows(rows)
    report = await run_query(svc.bulk_import, valid, errors, len(rows))
    if report["imported"]:
        after_write(request, cache, "student")
    return {
        "success": True,
        "data": report,
        "message": f"Import finished: {report['imported']}/{len(rows)} students imported",
    }


@router.get("/{student_id}")
async def get_student(student_id: int, request: Request, cache: EntryCache = Depends(get_api_cache)):
    data = await cached_query(request, cache, cache_keys.student(student_id), svc.get_student, student_id)
    return {"success": True, "data": data}


@router.put("/{student_id}")
async def update_student(
    student_id: int,
    payload: StudentUpdate,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    data = await run_query(svc.update_student, student_id, changes)
    after_write(request, cache, "student")
    return {"success": True, "data": data, "message": "Student updated"}


@router.delete("/{student_id}")
async def delete_student(student_id: int, request: Request, cache: EntryCache = Depends(get_api_cache)):
    await run_query(svc.delete_student, student_id)
    after_write(request, cache, "student")
    return {"success": True, "message": "Student deleted"}

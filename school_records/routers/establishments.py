# school_records/routers/establishments.py
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from school_records.routers.deps import after_write, cached_query, get_api_cache, run_query
from school_records.services import establishments as svc
from school_records.utils.api_cache import EntryCache, cache_keys

router = APIRouter(prefix="/api/establishments", tags=["establishments"])


# --------- Schemas ---------

class EstablishmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=300)
    school_year: str = Field(..., min_length=4, max_length=20)
    phone: str = ""
    logo: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    color: Optional[str] = None
    font: Optional[str] = None


class EstablishmentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    address: Optional[str] = Field(None, min_length=1, max_length=300)
    school_year: Optional[str] = Field(None, min_length=4, max_length=20)
    phone: Optional[str] = None
    logo: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    color: Optional[str] = None
    font: Optional[str] = None


# --------- Routes ---------

@router.get("")
async def list_establishments(request: Request, cache: EntryCache = Depends(get_api_cache)):
    data = await cached_query(request, cache, cache_keys.ALL_ESTABLISHMENTS, svc.list_establishments)
    return {"success": True, "data": data}


@router.post("")
async def create_establishment(
    payload: EstablishmentCreate,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    data = await run_query(svc.create_establishment, payload.model_dump(exclude_none=True))
    after_write(request, cache, "establishment")
    return {"success": True, "data": data, "message": "Establishment created"}


@router.get("/{establishment_id}")
async def get_establishment(
    establishment_id: int,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    data = await cached_query(
        request, cache, cache_keys.establishment(establishment_id), svc.get_establishment, establishment_id
    )
    return {"success": True, "data": data}


@router.put("/{establishment_id}")
async def update_establishment(
    establishment_id: int,
    payload: EstablishmentUpdate,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    data = await run_query(svc.update_establishment, establishment_id, changes)
    after_write(request, cache, "establishment")
    return {"success": True, "data": data, "message": "Establishment updated"}


@router.delete("/{establishment_id}")
async def delete_establishment(
    establishment_id: int,
    request: Request,
    cache: EntryCache = Depends(get_api_cache),
):
    await run_query(svc.delete_establishment, establishment_id)
    after_write(request, cache, "establishment")
    return {"success": True, "message": "Establishment deleted"}

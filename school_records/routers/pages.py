# =============================================
# File: school_records/routers/pages.py
# Purpose: Server-rendered dashboard page
# =============================================
from __future__ import annotations
from pathlib import Path
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from school_records.routers.deps import cached_query, get_api_cache, run_query
from school_records.services.establishments import list_establishments
from school_records.services.statistics import dashboard_statistics
from school_records.utils.api_cache import EntryCache, cache_keys

router = APIRouter()

# Point Jinja to the project's templates folder
BASE_DIR = Path(__file__).resolve().parents[1]
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))

@router.get("/", response_class=HTMLResponse, include_in_schema=False)
async def dashboard(request: Request, cache: EntryCache = Depends(get_api_cache)):
    """
    Home page: totals, the establishment list (served from the API cache)
    and a cache summary.
    """
    stats = await run_query(dashboard_statistics)
    establishments = await cached_query(request, cache, cache_keys.ALL_ESTABLISHMENTS, list_establishments)
    return templates.TemplateResponse(
        request,
        "index.html",
        {
            "app_name": "School Records",
            "stats": stats,
            "establishments": establishments,
            "cache": cache.stats(),
        },
    )

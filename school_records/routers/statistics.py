# =============================================
# File: school_records/routers/statistics.py
# Purpose: Dashboard totals and cache diagnostics
# =============================================
from __future__ import annotations

from fastapi import APIRouter, Depends

from school_records.routers.deps import get_api_cache, run_query
from school_records.services.statistics import dashboard_statistics
from school_records.utils.api_cache import EntryCache

router = APIRouter(prefix="/api", tags=["statistics"])


def _human_ttl(seconds: float) -> str:
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" + ("s" if minutes > 1 else "")
    return f"{seconds:g} seconds"


@router.get("/statistics")
async def get_statistics():
    """Live counts (never cached: the dashboard must reflect the last write)."""
    data = await run_query(dashboard_statistics)
    return {"success": True, "data": data}


@router.get("/cache-stats")
def cache_stats(cache: EntryCache = Depends(get_api_cache)):
    """Read-only snapshot of the API cache, for operators."""
    stats = cache.stats()
    return {
        "success": True,
        "cache": {
            "status": "online",
            "total_entries": stats["total_entries"],
            "size_bytes": stats["size_bytes"],
            "size_mb": f"{stats['size_bytes'] / 1024 / 1024:.2f}",
            "message": "In-memory cache active",
        },
        "ttls": {category: _human_ttl(ttl) for category, ttl in cache.ttls.items()},
    }

# =============================================
# File: school_records/routers/metrics.py
# Purpose: Expose request metrics plus API cache effectiveness as JSON
# =============================================
from __future__ import annotations
from fastapi import APIRouter, Depends

from school_records.routers.deps import get_api_cache
from school_records.utils.api_cache import EntryCache
from school_records.utils.metrics import snapshot

router = APIRouter(tags=["metrics"])

@router.get("/metrics")
def get_metrics(cache: EntryCache = Depends(get_api_cache)):
    """
    In-process metrics. `cache` groups the lookup/invalidation counters with
    the live size of the app's EntryCache.
    """
    data = snapshot()
    counters = data["counters"]
    stats = cache.stats()
    data["cache"] = {
        "hits": counters["cache_hits_total"],
        "misses": counters["cache_misses_total"],
        "invalidated_entries": counters["cache_invalidations_total"],
        "hit_rate": data["cache_hit_rate"],
        "entries": stats["total_entries"],
        "size_bytes": stats["size_bytes"],
        "max_entries": cache.max_entries,
    }
    return data

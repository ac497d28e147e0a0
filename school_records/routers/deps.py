# =============================================
# File: school_records/routers/deps.py
# Purpose: Shared route helpers: cache handle, threadpool DB loaders, rate limiting, invalidation
# =============================================
from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.concurrency import run_in_threadpool

from school_records.db import repo
from school_records.utils.api_cache import EntryCache, invalidate_after_change, invalidate_parent_aggregates
from school_records.utils.metrics import record_cache_invalidation, record_cache_lookup, record_rate_limit_hit
from school_records.utils.ratelimit import check_rate_limit, client_key


def strip_required(v: Optional[str]) -> Optional[str]:
    """Field validator body: trim names, reject whitespace-only values (None passes for partial updates)."""
    if v is None:
        return v
    v = v.strip()
    if not v:
        raise ValueError("must not be empty")
    return v


def get_api_cache(request: Request) -> EntryCache:
    """The cache instance owned by the app (built once in main.py)."""
    return request.app.state.api_cache


def log_context(request: Request) -> Dict[str, Any]:
    ctx = getattr(request.state, "log_context", None)
    if ctx is None:
        ctx = {}
        request.state.log_context = ctx
    return ctx


async def run_query(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Run a sync service call with its own Session in the threadpool."""
    def _call():
        with repo.get_session() as session:
            return fn(session, *args, **kwargs)

    return await run_in_threadpool(_call)


async def cached_query(
    request: Request,
    cache: EntryCache,
    key: str,
    fn: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Serve `key` from the cache, loading it through `fn` on a miss."""
    loaded = False

    async def _loader():
        nonlocal loaded
        loaded = True
        return await run_query(fn, *args, **kwargs)

    value = await cache.get_or_set(key, _loader)
    record_cache_lookup(hit=not loaded)
    ctx = log_context(request)
    ctx["cache_key"] = key
    ctx["cache_hit"] = not loaded
    return value


def enforce_rate_limit(request: Request, sensitive: bool = False) -> None:
    key = client_key(request.headers, request.client.host if request.client else None)
    try:
        check_rate_limit(key, sensitive=sensitive)
    except RuntimeError:
        record_rate_limit_hit()
        log_context(request)["rate_limited"] = True
        raise HTTPException(status_code=429, detail="Too many requests. Please try again later.")


def after_write(request: Request, cache: EntryCache, entity: str) -> None:
    """Invalidate cached reads once a create/update/delete has committed."""
    removed = invalidate_after_change(cache, entity)
    removed += invalidate_parent_aggregates(cache, entity)
    record_cache_invalidation(removed)
    log_context(request)["cache_invalidated"] = removed

# =============================================
# File: school_records/utils/slog.py
# Purpose: JSON request events (request id, route, cache hit/invalidation, rate limiting)
# =============================================
from __future__ import annotations
import json
import logging
import os
import uuid
from typing import Any, Dict

_LOGGER_NAME = "school_records"
_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

_logger = logging.getLogger(_LOGGER_NAME)
if not _logger.handlers:
    _logger.setLevel(getattr(logging, _LEVEL, logging.INFO))
    _handler = logging.StreamHandler()
    # Emit the message as-is; we pre-format JSON strings ourselves
    _handler.setFormatter(logging.Formatter("%(message)s"))
    _logger.addHandler(_handler)
    _logger.propagate = True  # allow pytest caplog to capture

def new_request_id() -> str:
    return uuid.uuid4().hex

# Every request.completed line carries these keys, even on routes that never touch the cache
_REQUEST_DEFAULTS: Dict[str, Any] = {
    "cache_key": None,
    "cache_hit": None,
    "cache_invalidated": 0,
    "rate_limited": False,
}

def log_event(event: str, **fields: Any) -> None:
    rec = {"event": event}
    rec.update(fields)
    _logger.info(json.dumps(rec, ensure_ascii=False, default=str))

def finalize_request_log(
    request_id: str,
    method: str,
    path: str,
    status: int,
    latency_ms: int,
    client_ip: str | None,
    route: str | None = None,
    ctx: Dict[str, Any] | None = None,
) -> None:
    payload: Dict[str, Any] = {
        "event": "request.completed",
        "request_id": request_id,
        "method": method,
        "path": path,
        "route": route or path,
        "status": status,
        "latency_ms": latency_ms,
        "client_ip": client_ip or "",
    }
    payload.update(_REQUEST_DEFAULTS)
    if status == 429:
        payload["rate_limited"] = True
    if ctx:
        payload.update(ctx)
    _logger.info(json.dumps(payload, ensure_ascii=False, default=str))

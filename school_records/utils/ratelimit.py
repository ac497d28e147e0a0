# =============================================
# File: school_records/utils/ratelimit.py
# Purpose: In-memory per-client rate limiter (standard + sensitive tiers)
# =============================================

# Sliding window over request timestamps, in-memory storage

from __future__ import annotations
import os
import time
from collections import deque
from typing import Dict, Deque, Optional

# In-memory store: "<tier>:<client>" -> timestamps deque
_store: Dict[str, Deque[float]] = {}

def _get_limits(sensitive: bool) -> tuple[int, int]:
    """Read limits at call time so tests/env overrides take effect."""
    if sensitive:
        max_reqs = int(os.getenv("RL_SENSITIVE_MAX_REQS", "10"))
    else:
        max_reqs = int(os.getenv("RL_MAX_REQS", "100"))
    window_s = int(os.getenv("RL_WINDOW_SECONDS", "60"))
    return max_reqs, window_s

def client_key(headers, fallback_host: Optional[str] = None) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return fallback_host or "127.0.0.1"

def check_rate_limit(key: str, sensitive: bool = False) -> None:
    """Raise RuntimeError when rate limited."""
    now = time.time()
    max_reqs, window_s = _get_limits(sensitive)

    dq = _store.setdefault(f"{'sensitive' if sensitive else 'standard'}:{key}", deque())

    # Drop timestamps outside the window
    cutoff = now - window_s
    while dq and dq[0] < cutoff:
        dq.popleft()

    if len(dq) >= max_reqs:
        raise RuntimeError("Rate limit exceeded")

    dq.append(now)

def reset_rate_limit() -> None:
    """For tests: clear in-memory counters."""
    _store.clear()

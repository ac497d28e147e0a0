# =============================================
# File: school_records/client/api.py
# Purpose: Async HTTP client for the records API with per-session caching and request de-duplication
# =============================================
from __future__ import annotations

import os
from typing import Any, Dict, Optional

import httpx

from school_records.utils.api_cache import cache_keys
from school_records.utils.fetch_cache import DEFAULT_TTL, RequestDeduplicator

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000")
TIMEOUT_S = float(os.getenv("API_TIMEOUT_SECONDS", "30"))

# Client-side key prefix touched by a write on each entity type
_PREFIXES = {
    "establishment": ("etab:", "class:", "eleve:", "pers:", "stats"),
    "class": ("class:", "eleve:", "etab:", "stats"),
    "student": ("eleve:", "class:", "etab:", "stats"),
    "staff": ("pers:", "stats"),
}


class ApiError(Exception):
    """Non-2xx response, or a body with success=false."""

    def __init__(self, status_code: int, detail: Any) -> None:
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail


class SchoolApiClient:
    """
    One instance per UI session. Reads go through `fetch_cached`, so concurrent
    callers asking for the same list share one HTTP request; writes evict the
    session's cached reads for the touched entity type.
    """

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        ttl: float = DEFAULT_TTL,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = TIMEOUT_S,
    ) -> None:
        self._http = httpx.AsyncClient(base_url=base_url, transport=transport, timeout=timeout)
        self.cache: RequestDeduplicator[Any] = RequestDeduplicator(ttl=ttl)

    async def __aenter__(self) -> "SchoolApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---------- plumbing ----------

    async def _request(self, method: str, path: str, **kwargs: Any) -> Dict[str, Any]:
        resp = await self._http.request(method, path, **kwargs)
        try:
            body = resp.json()
        except ValueError:
            body = {"detail": resp.text}
        if resp.status_code >= 400:
            if isinstance(body, dict):
                raise ApiError(resp.status_code, body.get("detail") or body.get("error") or body)
            raise ApiError(resp.status_code, body)
        if not isinstance(body, dict):
            raise ApiError(resp.status_code, f"Unexpected response body: {body!r}")
        if body.get("success") is False:
            raise ApiError(resp.status_code, body.get("error") or "Unknown error")
        return body

    async def _get_data(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        clean = {k: v for k, v in (params or {}).items() if v is not None}
        body = await self._request("GET", path, params=clean)
        return body.get("data")

    def _cached(self, key: str, path: str, params: Optional[Dict[str, Any]] = None):
        return self.cache.fetch_cached(lambda: self._get_data(path, params), key)

    def _forget(self, entity: str) -> None:
        for prefix in _PREFIXES[entity]:
            self.cache.invalidate_prefix(prefix)

    # ---------- reads ----------

    async def list_establishments(self):
        return await self._cached(cache_keys.ALL_ESTABLISHMENTS, "/api/establishments")

    async def get_establishment(self, establishment_id: int):
        return await self._cached(
            cache_keys.establishment(establishment_id), f"/api/establishments/{establishment_id}"
        )

    async def list_classes(self, establishment_id: Optional[int] = None):
        key = (
            cache_keys.classes_by_establishment(establishment_id)
            if establishment_id is not None
            else cache_keys.ALL_CLASSES
        )
        return await self._cached(key, "/api/classes", {"establishment_id": establishment_id})

    async def get_class(self, class_id: int):
        return await self._cached(cache_keys.school_class(class_id), f"/api/classes/{class_id}")

    async def list_students(self, class_id: Optional[int] = None, establishment_id: Optional[int] = None):
        key = cache_keys.students(class_id=class_id, establishment_id=establishment_id)
        return await self._cached(
            key, "/api/students", {"class_id": class_id, "establishment_id": establishment_id}
        )

    async def list_staff(self, establishment_id: Optional[int] = None):
        key = (
            cache_keys.staff_by_establishment(establishment_id)
            if establishment_id is not None
            else cache_keys.ALL_STAFF
        )
        return await self._cached(key, "/api/staff", {"establishment_id": establishment_id})

    async def get_statistics(self):
        return await self._cached("stats:dashboard", "/api/statistics")

    # ---------- writes ----------

    async def _write(self, entity: str, method: str, path: str, payload: Optional[Dict[str, Any]] = None):
        body = await self._request(method, path, json=payload)
        self._forget(entity)
        return body.get("data")

    async def create_establishment(self, payload: Dict[str, Any]):
        return await self._write("establishment", "POST", "/api/establishments", payload)

    async def update_establishment(self, establishment_id: int, payload: Dict[str, Any]):
        return await self._write("establishment", "PUT", f"/api/establishments/{establishment_id}", payload)

    async def delete_establishment(self, establishment_id: int):
        return await self._write("establishment", "DELETE", f"/api/establishments/{establishment_id}")

    async def create_class(self, payload: Dict[str, Any]):
        return await self._write("class", "POST", "/api/classes", payload)

    async def update_class(self, class_id: int, payload: Dict[str, Any]):
        return await self._write("class", "PUT", f"/api/classes/{class_id}", payload)

    async def delete_class(self, class_id: int):
        return await self._write("class", "DELETE", f"/api/classes/{class_id}")

    async def create_student(self, payload: Dict[str, Any]):
        return await self._write("student", "POST", "/api/students", payload)

    async def update_student(self, student_id: int, payload: Dict[str, Any]):
        return await self._write("student", "PUT", f"/api/students/{student_id}", payload)

    async def delete_student(self, student_id: int):
        return await self._write("student", "DELETE", f"/api/students/{student_id}")

    async def create_staff_member(self, payload: Dict[str, Any]):
        return await self._write("staff", "POST", "/api/staff", payload)

    async def update_staff_member(self, staff_id: int, payload: Dict[str, Any]):
        return await self._write("staff", "PUT", f"/api/staff/{staff_id}", payload)

    async def delete_staff_member(self, staff_id: int):
        return await self._write("staff", "DELETE", f"/api/staff/{staff_id}")

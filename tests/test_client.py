# =============================================
# File: tests/test_client.py
# Purpose: Async API client: de-duplicated reads, invalidation on writes, error mapping
# =============================================
import sys, os, asyncio
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import httpx
import pytest

from school_records.client.api import ApiError, SchoolApiClient
from school_records.db import repo
from school_records.utils.api_cache import EntryCache
from school_records.utils.ratelimit import reset_rate_limit

ESTABLISHMENTS = [{"id": 1, "name": "Lycée Victor Hugo"}]


def _transport(seen, delay=0.01):
    """Fake backend recording (method, path, query) per request."""
    async def handler(request: httpx.Request):
        seen.append((request.method, request.url.path, dict(request.url.params)))
        await asyncio.sleep(delay)
        path = request.url.path
        if path == "/api/establishments" and request.method == "GET":
            return httpx.Response(200, json={"success": True, "data": ESTABLISHMENTS})
        if path == "/api/establishments/404":
            return httpx.Response(404, json={"detail": "Establishment not found"})
        if path == "/api/establishments/500":
            return httpx.Response(500, json=["worker crashed"])
        if path == "/api/classes/7":
            return httpx.Response(200, json="maintenance")
        if path == "/api/statistics":
            return httpx.Response(200, json={"success": False, "error": "database unavailable"})
        if request.method == "GET":
            return httpx.Response(200, json={"success": True, "data": []})
        return httpx.Response(200, json={"success": True, "data": {"id": 99}})

    return httpx.MockTransport(handler)


def test_concurrent_reads_share_one_request():
    seen = []

    async def scenario():
        async with SchoolApiClient(base_url="http://api.test", transport=_transport(seen)) as api:
            results = await asyncio.gather(*(api.list_establishments() for _ in range(4)))
            again = await api.list_establishments()
            return results, again

    results, again = asyncio.run(scenario())
    assert len(seen) == 1
    assert all(r == ESTABLISHMENTS for r in results)
    assert again == ESTABLISHMENTS


def test_filters_are_sent_and_keyed_separately():
    seen = []

    async def scenario():
        async with SchoolApiClient(base_url="http://api.test", transport=_transport(seen)) as api:
            await api.list_classes()
            await api.list_classes(establishment_id=3)
            await api.list_classes(establishment_id=3)
            await api.list_students(class_id=5)
            return api.cache

    cache = asyncio.run(scenario())
    assert seen == [
        ("GET", "/api/classes", {}),
        ("GET", "/api/classes", {"establishment_id": "3"}),
        ("GET", "/api/students", {"class_id": "5"}),
    ]
    assert cache.peek("class:etab:3") == []
    assert cache.peek("eleve:class:5") == []


def test_http_error_raises_and_is_not_cached():
    seen = []

    async def scenario():
        async with SchoolApiClient(base_url="http://api.test", transport=_transport(seen)) as api:
            for _ in range(2):
                with pytest.raises(ApiError) as exc:
                    await api.get_establishment(404)
                assert exc.value.status_code == 404
                assert exc.value.detail == "Establishment not found"

    asyncio.run(scenario())
    assert len(seen) == 2


def test_error_body_that_is_not_an_object():
    seen = []

    async def scenario():
        async with SchoolApiClient(base_url="http://api.test", transport=_transport(seen)) as api:
            with pytest.raises(ApiError) as failed:
                await api.get_establishment(500)
            with pytest.raises(ApiError) as odd:
                await api.get_class(7)
            return failed.value, odd.value

    failed, odd = asyncio.run(scenario())
    assert failed.status_code == 500
    assert failed.detail == ["worker crashed"]
    assert odd.status_code == 200
    assert "maintenance" in str(odd.detail)

def test_success_false_body_raises():
    seen = []

    async def scenario():
        async with SchoolApiClient(base_url="http://api.test", transport=_transport(seen)) as api:
            with pytest.raises(ApiError, match="database unavailable"):
                await api.get_statistics()

    asyncio.run(scenario())


def test_write_evicts_cached_reads():
    seen = []

    async def scenario():
        async with SchoolApiClient(base_url="http://api.test", transport=_transport(seen)) as api:
            await api.list_students()
            await api.list_staff()
            await api.create_student({"last_name": "Dupont"})
            await api.list_students()
            await api.list_staff()

    asyncio.run(scenario())
    gets = [(m, p) for m, p, _ in seen if m == "GET"]
    # students re-fetched after the write, staff still cached
    assert gets == [("GET", "/api/students"), ("GET", "/api/staff"), ("GET", "/api/students")]
    assert ("POST", "/api/students", {}) in seen


def test_against_the_app(monkeypatch, tmp_path):
    monkeypatch.setenv("RL_MAX_REQS", "1000")
    monkeypatch.setenv("RL_SENSITIVE_MAX_REQS", "1000")
    reset_rate_limit()
    repo.reset_engine(f"sqlite:///{tmp_path / 'records.db'}")
    repo.init_db()
    from school_records.main import app
    app.state.api_cache = EntryCache()

    async def scenario():
        transport = httpx.ASGITransport(app=app)
        async with SchoolApiClient(base_url="http://testserver", transport=transport) as api:
            assert await api.list_establishments() == []
            est = await api.create_establishment(
                {"name": "Lycée Victor Hugo", "address": "Paris", "school_year": "2025-2026"}
            )
            klass = await api.create_class({"name": "6ème A", "level": "6ème", "establishment_id": est["id"]})
            await api.create_student(
                {"last_name": "Dupont", "first_name": "Jean", "birth_date": "2013-05-15", "class_id": klass["id"]}
            )
            names = [e["name"] for e in await api.list_establishments()]
            students = await api.list_students(class_id=klass["id"])
            stats = await api.get_statistics()
            with pytest.raises(ApiError) as exc:
                await api.delete_class(klass["id"])
            return names, students, stats, exc.value.status_code

    names, students, stats, status = asyncio.run(scenario())
    assert names == ["Lycée Victor Hugo"]
    assert [s["last_name"] for s in students] == ["DUPONT"]
    assert stats["total_students"] == 1
    assert status == 400

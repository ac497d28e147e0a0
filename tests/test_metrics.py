# =============================================
# File: tests/test_metrics.py
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from fastapi.testclient import TestClient

from school_records.db import repo
from school_records.utils.api_cache import EntryCache
from school_records.utils.metrics import reset as metrics_reset
from school_records.utils.ratelimit import reset_rate_limit


def _mount_client(monkeypatch, tmp_path):
    # Make rate limit permissive for this test
    monkeypatch.setenv("RL_MAX_REQS", "100")
    monkeypatch.setenv("RL_WINDOW_SECONDS", "60")
    reset_rate_limit()
    metrics_reset()
    repo.reset_engine(f"sqlite:///{tmp_path / 'records.db'}")
    repo.init_db()

    from school_records.main import app
    app.state.api_cache = EntryCache()
    return TestClient(app)


def test_metrics_counts_and_cache_hits(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    for _ in range(3):
        assert client.get("/api/establishments").status_code == 200

    m = client.get("/metrics").json()
    # the /metrics call itself is recorded after its snapshot is taken
    assert m["counters"]["requests_total"] == 3
    assert m["counters"]["cache_misses_total"] == 1
    assert m["counters"]["cache_hits_total"] == 2
    assert abs(m["cache_hit_rate"] - 2 / 3) < 1e-9
    # histogram consistency: sum of buckets equals requests_total
    assert sum(m["latency_ms"]["counts"]) == m["counters"]["requests_total"]
    assert m["latency_ms"]["buckets"][-1] == "+Inf"


def test_invalidations_are_counted(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    client.get("/api/establishments")
    client.post("/api/establishments", json={"name": "Lycée", "address": "Paris", "school_year": "2025-2026"})

    m = client.get("/metrics").json()
    assert m["counters"]["cache_invalidations_total"] == 1


def test_rate_limit_is_counted(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    # Tight limiter
    monkeypatch.setenv("RL_MAX_REQS", "1")
    _ = client.get("/api/staff")
    _ = client.get("/api/staff")
    m = client.get("/metrics").json()
    assert m["counters"]["rate_limit_hits_total"] >= 1


def test_endpoint_table_uses_route_templates(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    client.get("/api/classes/1")
    client.get("/api/classes/2")

    eps = client.get("/metrics").json()["performance"]["endpoints"]
    assert "GET /api/classes/{class_id}" in eps
    assert eps["GET /api/classes/{class_id}"]["count"] == 2
    for v in eps.values():
        assert "avg_latency_ms" in v
        assert "p95_latency_ms" in v


def test_cache_section_reports_live_cache(monkeypatch, tmp_path):
    monkeypatch.setenv("CACHE_MAX_ENTRIES", "50")
    client = _mount_client(monkeypatch, tmp_path)
    client.post("/api/establishments", json={"name": "Lycée", "address": "Paris", "school_year": "2025-2026"})
    for _ in range(3):
        client.get("/api/establishments")
    client.get("/api/staff")

    cache = client.get("/metrics").json()["cache"]
    assert cache["hits"] == 2
    assert cache["misses"] == 2
    assert cache["entries"] == 2
    assert cache["max_entries"] == 50
    assert cache["size_bytes"] > 0
    assert cache["hit_rate"] == 0.5

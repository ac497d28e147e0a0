# =============================================
# File: tests/test_rate_limit.py
# Purpose: Validate per-client rate limiting (standard and sensitive tiers)
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

import pytest
from fastapi.testclient import TestClient

from school_records.db import repo
from school_records.utils.api_cache import EntryCache
from school_records.utils.ratelimit import check_rate_limit, client_key, reset_rate_limit


def _mount_client(monkeypatch, tmp_path):
    reset_rate_limit()
    repo.reset_engine(f"sqlite:///{tmp_path / 'records.db'}")
    repo.init_db()

    from school_records.main import app
    app.state.api_cache = EntryCache()
    return TestClient(app)


def test_standard_limit_on_staff_list(monkeypatch, tmp_path):
    monkeypatch.setenv("RL_MAX_REQS", "2")
    monkeypatch.setenv("RL_WINDOW_SECONDS", "60")
    client = _mount_client(monkeypatch, tmp_path)

    assert client.get("/api/staff").status_code == 200
    assert client.get("/api/staff").status_code == 200
    r = client.get("/api/staff")
    assert r.status_code == 429
    assert r.json()["detail"] == "Too many requests. Please try again later."


def test_limits_are_per_client(monkeypatch, tmp_path):
    monkeypatch.setenv("RL_MAX_REQS", "1")
    client = _mount_client(monkeypatch, tmp_path)

    assert client.get("/api/staff", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 200
    assert client.get("/api/staff", headers={"X-Forwarded-For": "10.0.0.2"}).status_code == 200
    assert client.get("/api/staff", headers={"X-Forwarded-For": "10.0.0.1"}).status_code == 429


def test_sensitive_tier_is_separate(monkeypatch, tmp_path):
    monkeypatch.setenv("RL_MAX_REQS", "100")
    monkeypatch.setenv("RL_SENSITIVE_MAX_REQS", "1")
    client = _mount_client(monkeypatch, tmp_path)

    assert client.post("/api/students/bulk", json={"students": []}).status_code == 400
    assert client.post("/api/students/bulk", json={"students": []}).status_code == 429
    # standard routes are unaffected
    assert client.get("/api/staff").status_code == 200


def test_check_rate_limit_raises(monkeypatch):
    monkeypatch.setenv("RL_MAX_REQS", "1")
    reset_rate_limit()
    check_rate_limit("1.2.3.4")
    with pytest.raises(RuntimeError):
        check_rate_limit("1.2.3.4")


def test_client_key_prefers_proxy_headers():
    assert client_key({"x-forwarded-for": "1.1.1.1, 2.2.2.2"}, "9.9.9.9") == "1.1.1.1"
    assert client_key({"x-real-ip": " 3.3.3.3 "}, "9.9.9.9") == "3.3.3.3"
    assert client_key({}, "9.9.9.9") == "9.9.9.9"
    assert client_key({}, None) == "127.0.0.1"

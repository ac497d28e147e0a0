# =============================================
# File: tests/test_students.py
# Purpose: Student CRUD, filters, registration numbers and bulk import
# =============================================
import sys, os
sys.path.append(os.path.dirname(os.path.dirname(__file__)))

from fastapi.testclient import TestClient

from school_records.db import repo
from school_records.utils.api_cache import EntryCache
from school_records.utils.ratelimit import reset_rate_limit


def _mount_client(monkeypatch, tmp_path):
    monkeypatch.setenv("RL_MAX_REQS", "1000")
    monkeypatch.setenv("RL_SENSITIVE_MAX_REQS", "1000")
    reset_rate_limit()
    repo.reset_engine(f"sqlite:///{tmp_path / 'records.db'}")
    repo.init_db()

    from school_records.main import app
    app.state.api_cache = EntryCache()
    return TestClient(app)


def _setup(client):
    """Two establishments, one class each. Returns (hugo_id, class_a, camus_id, class_b)."""
    hugo = client.post(
        "/api/establishments", json={"name": "Lycée Victor Hugo", "address": "Paris", "school_year": "2025-2026"}
    ).json()["data"]["id"]
    camus = client.post(
        "/api/establishments", json={"name": "Collège Albert Camus", "address": "Lyon", "school_year": "2024-2025"}
    ).json()["data"]["id"]
    a = client.post("/api/classes", json={"name": "6ème A", "level": "6ème", "establishment_id": hugo}).json()["data"]["id"]
    b = client.post("/api/classes", json={"name": "5ème B", "level": "5ème", "establishment_id": camus}).json()["data"]["id"]
    return hugo, a, camus, b


def _student(last, class_id, **extra):
    return {"last_name": last, "first_name": "Test", "birth_date": "2013-05-15", "class_id": class_id, **extra}


def test_create_upper_cases_and_numbers(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    _, class_a, _, class_b = _setup(client)

    first = client.post("/api/students", json=_student("Dupont", class_a)).json()["data"]
    assert first["last_name"] == "DUPONT"
    assert first["registration_number"] == "202500001"
    assert first["class"]["name"] == "6ème A"
    assert first["establishment"]["name"] == "Lycée Victor Hugo"

    second = client.post("/api/students", json=_student("Martin", class_b, sex="F")).json()["data"]
    # prefix follows the class's school year, sequence is global
    assert second["registration_number"] == "202400002"
    assert second["sex"] == "F"


def test_list_filters(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    hugo, class_a, camus, class_b = _setup(client)
    client.post("/api/students", json=_student("Dupont", class_a))
    client.post("/api/students", json=_student("Bernard", class_a))
    client.post("/api/students", json=_student("Martin", class_b))

    body = client.get("/api/students").json()
    assert body["meta"] == {"total": 3, "class_filter": None, "establishment_filter": None}
    assert [s["last_name"] for s in body["data"]] == ["BERNARD", "DUPONT", "MARTIN"]

    by_class = client.get("/api/students", params={"class_id": class_a}).json()
    assert by_class["meta"]["total"] == 2

    by_est = client.get("/api/students", params={"establishment_id": camus}).json()
    assert [s["last_name"] for s in by_est["data"]] == ["MARTIN"]

    both = client.get("/api/students", params={"class_id": class_a, "establishment_id": camus}).json()
    assert both["data"] == []


def test_invalid_payloads(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    _, class_a, _, _ = _setup(client)

    assert client.post("/api/students", json=_student("Dupont", class_a, sex="X")).status_code == 422
    assert client.post("/api/students", json=_student("   ", class_a)).status_code == 422
    r = client.post("/api/students", json=_student("Dupont", 999))
    assert r.status_code == 400
    assert r.json()["detail"] == "The specified class does not exist"


def test_update_get_delete(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    _, class_a, _, class_b = _setup(client)
    sid = client.post("/api/students", json=_student("Dupont", class_a)).json()["data"]["id"]

    r = client.put(f"/api/students/{sid}", json={"class_id": class_b, "last_name": "durand"})
    assert r.status_code == 200
    assert r.json()["data"]["last_name"] == "DURAND"
    assert r.json()["data"]["class"]["id"] == class_b

    assert client.put(f"/api/students/{sid}", json={"class_id": 999}).status_code == 400

    assert client.delete(f"/api/students/{sid}").status_code == 200
    assert client.get(f"/api/students/{sid}").status_code == 404


def test_bulk_import_reports_bad_rows(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    _, class_a, _, _ = _setup(client)

    rows = [
        _student("Dupont", class_a),
        _student("Martin", 999),
        {"first_name": "NoLastName", "birth_date": "2013-01-01", "class_id": class_a},
        _student("Bernard", class_a),
    ]
    r = client.post("/api/students/bulk", json={"students": rows})
    assert r.status_code == 200
    report = r.json()["data"]
    assert report["total_received"] == 4
    assert report["imported"] == 2
    assert report["errors"] == 2
    assert report["success_rate"] == 50
    assert [d["index"] for d in report["details"]] == [1, 2]
    assert report["details"][0]["error"] == "Invalid class"

    numbers = sorted(s["registration_number"] for s in client.get("/api/students").json()["data"])
    assert numbers == ["202500001", "202500002"]


def test_bulk_import_limits(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    assert client.post("/api/students/bulk", json={"students": []}).status_code == 400
    assert client.post("/api/students/bulk", json={}).status_code == 400
    too_many = [_student("X", 1)] * 1001
    assert client.post("/api/students/bulk", json={"students": too_many}).status_code == 400


def test_bulk_template(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    data = client.get("/api/students/bulk/template").json()["data"]
    required = {c["name"] for c in data["columns"] if c["required"]}
    assert required == {"last_name", "first_name", "birth_date", "class_id"}
    assert data["example"]


def test_update_rejects_blank_names(monkeypatch, tmp_path):
    client = _mount_client(monkeypatch, tmp_path)
    _, class_a, _, _ = _setup(client)
    sid = client.post("/api/students", json=_student("Dupont", class_a)).json()["data"]["id"]

    assert client.put(f"/api/students/{sid}", json={"last_name": "   "}).status_code == 422
    assert client.put(f"/api/students/{sid}", json={"first_name": "\t"}).status_code == 422
    r = client.put(f"/api/students/{sid}", json={"first_name": "  Léa  "})
    assert r.status_code == 200
    assert r.json()["data"]["last_name"] == "DUPONT"
    assert r.json()["data"]["first_name"].strip() == r.json()["data"]["first_name"]

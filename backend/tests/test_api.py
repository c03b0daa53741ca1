import pytest
from conftest import CSV_HEADER
from fastapi.testclient import TestClient

from fleet_import import api
from fleet_import.session import ImportState

CSV_BODY = (
    f"{CSV_HEADER}\n"
    "2024-03-01,ABC123,Main,Fuel,45.50,Fill-up,12000\n"
    "2024-03-02,NEW001,North,Tires,300.00,Winter set,\n"
    "bad-date,XYZ789,North,Fuel,12.00,,\n"
).encode()


@pytest.fixture
def client(store, monkeypatch):
    monkeypatch.delenv("USE_PREAPPROVAL", raising=False)
    api.app.dependency_overrides[api.get_store] = lambda: store
    with TestClient(api.app) as c:
        yield c
    api.app.dependency_overrides.clear()
    api._sessions.clear()


def _upload(client, body=CSV_BODY, name="fuel.csv"):
    resp = client.post("/imports", files=[("files", (name, body, "text/csv"))])
    assert resp.status_code == 200, resp.text
    return resp.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_upload_returns_preview(client):
    data = _upload(client)
    assert data["state"] == "previewing"
    assert data["fileName"] == "fuel.csv"
    assert data["stats"]["total_records"] == 3
    assert data["stats"]["matched_count"] == 2
    assert data["errors"] == ['fuel.csv Line 4: Invalid date format "bad-date"']
    first = data["entries"][0]
    assert first["matched_vehicle"]["id"] == "v1"
    assert first["matched_branch"]["name"] == "Main"
    assert data["entries"][1]["matched_vehicle"] is None

    again = client.get(f"/imports/{data['session_id']}").json()
    assert again["stats"] == data["stats"]


def test_edit_remove_and_breakdown(client):
    sid = _upload(client)["session_id"]

    resp = client.patch(f"/imports/{sid}/entries/1", json={"vehicle_id": "v2", "amount": 250})
    assert resp.status_code == 200
    body = resp.json()
    assert body["entry"]["matched_vehicle"]["plate"] == "XYZ789"
    assert body["entry"]["amount"] == 250.0
    assert body["stats"]["unmatched_count"] == 0

    resp = client.delete(f"/imports/{sid}/entries/2")
    assert resp.json()["stats"]["total_records"] == 2

    breakdown = client.get(f"/imports/{sid}/breakdown").json()
    names = {row["name"] for row in breakdown["by_vehicle"]}
    assert names == {"ABC123", "XYZ789"}


def test_patch_out_of_range_is_404(client):
    sid = _upload(client)["session_id"]
    assert client.patch(f"/imports/{sid}/entries/9", json={"amount": 1}).status_code == 404
    assert client.delete(f"/imports/{sid}/entries/9").status_code == 404


def test_unknown_session_is_404(client):
    assert client.get("/imports/nope").status_code == 404


def test_missing_vehicles_then_commit(client, store):
    sid = _upload(client)["session_id"]

    data = client.post(f"/imports/{sid}/missing-vehicles").json()
    assert [v["plate"] for v in data["created_vehicles"]] == ["NEW001"]
    assert data["stats"]["unmatched_count"] == 0

    resp = client.post(f"/imports/{sid}/commit")
    assert resp.status_code == 200
    assert resp.json() == {
        "imported": 3,
        "failed": 0,
        "message": "Imported 3 records.",
        "failures": [],
    }
    assert len(store.expenses) == 3
    assert client.get(f"/imports/{sid}").status_code == 404


def test_commit_without_matches_is_conflict(client):
    body = f"{CSV_HEADER}\n2024-03-01,NOPE1,Main,Fuel,10.00,x,1\n".encode()
    sid = _upload(client, body)["session_id"]
    assert client.post(f"/imports/{sid}/commit").status_code == 409
    assert client.get(f"/imports/{sid}").status_code == 200


def test_cancel(client, store):
    sid = _upload(client)["session_id"]
    assert client.delete(f"/imports/{sid}").json() == {"cancelled": True}
    assert client.get(f"/imports/{sid}").status_code == 404
    assert store.expenses == []


def test_oversized_upload_is_rejected(client, monkeypatch):
    monkeypatch.setattr(api, "MAX_FILE_BYTES", 10)
    resp = client.post("/imports", files=[("files", ("fuel.csv", CSV_BODY, "text/csv"))])
    assert resp.status_code == 413


def test_abandoned_imports_are_evicted(client, monkeypatch):
    monkeypatch.setattr(api, "MAX_OPEN_IMPORTS", 2)
    ids = [_upload(client)["session_id"] for _ in range(3)]
    assert len(api._sessions) == 2
    assert client.get(f"/imports/{ids[0]}").status_code == 404
    assert client.get(f"/imports/{ids[2]}").status_code == 200


def test_recently_used_import_survives_eviction(client, monkeypatch):
    monkeypatch.setattr(api, "MAX_OPEN_IMPORTS", 2)
    first = _upload(client)["session_id"]
    second = _upload(client)["session_id"]
    client.get(f"/imports/{first}")
    _upload(client)
    assert client.get(f"/imports/{first}").status_code == 200
    assert client.get(f"/imports/{second}").status_code == 404


def test_edits_are_rejected_during_commit(client):
    sid = _upload(client)["session_id"]
    session = api._sessions[sid]
    session.state = ImportState.COMMITTING
    try:
        assert client.patch(f"/imports/{sid}/entries/0", json={"amount": 1}).status_code == 409
        assert client.delete(f"/imports/{sid}/entries/0").status_code == 409
        assert client.delete(f"/imports/{sid}").status_code == 409
        assert client.get(f"/imports/{sid}").status_code == 200
    finally:
        session.state = ImportState.PREVIEWING

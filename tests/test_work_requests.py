# tests/test_work_requests.py

"""
Tests for work request listing and batch draft approval.
"""

from fastapi.testclient import TestClient

from conftest import auth_headers


def draft(doc_id, number, status="DRAFT", **extra):
    row = {
        "id": doc_id,
        "site_id": "site-1",
        "document_number": number,
        "revision_number": 0,
        "is_latest": True,
        "status": status,
        "task_name": f"Task {number}",
        "due_date": "2026-02-01",
        "created_by": "pe-1",
        "workflow": [],
        "created_at": "2026-01-01T00:00:00+00:00",
    }
    row.update(extra)
    return row


def test_batch_approves_drafts_and_reports_failures(client: TestClient, fake_db):
    fake_db.add_user("pm-1", "PM")
    fake_db.rows("work_requests").extend([
        draft("wr-1", "WR-S1-0001"),
        draft("wr-2", "WR-S1-0002", status="PENDING_BIM"),
    ])

    response = client.post(
        "/work-requests/batch-transition",
        json={"ids": ["wr-1", "wr-2", "wr-404"], "target_status": "PENDING_BIM", "comments": "go"},
        headers=auth_headers("pm-1"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["updated"] == ["wr-1"]
    assert {e["id"] for e in body["errors"]} == {"wr-2", "wr-404"}

    rows = {r["id"]: r for r in fake_db.rows("work_requests")}
    assert rows["wr-1"]["status"] == "PENDING_BIM"
    assert rows["wr-1"]["workflow"][-1]["action"] == "APPROVE_DRAFT"


def test_batch_without_permission_updates_nothing(client: TestClient, fake_db):
    fake_db.add_user("bim-1", "BIM")
    fake_db.rows("work_requests").append(draft("wr-1", "WR-S1-0001"))

    response = client.post(
        "/work-requests/batch-transition",
        json={"ids": ["wr-1"], "target_status": "PENDING_BIM"},
        headers=auth_headers("bim-1"),
    )

    assert response.status_code == 200
    assert response.json()["updated"] == []
    assert fake_db.rows("work_requests")[0]["status"] == "DRAFT"


def test_batch_rejects_non_draft_target(client: TestClient, fake_db):
    fake_db.add_user("pm-1", "PM")

    response = client.post(
        "/work-requests/batch-transition",
        json={"ids": ["wr-1"], "target_status": "COMPLETED"},
        headers=auth_headers("pm-1"),
    )

    assert response.status_code == 400
    assert response.json()["error"] == "ValidationFailed"


def test_list_hides_superseded_revisions(client: TestClient, fake_db):
    fake_db.add_user("pe-1", "PE")
    fake_db.rows("work_requests").extend([
        draft("wr-1", "WR-S1-0001", is_latest=False, status="REVISION_REQUESTED"),
        draft("wr-1b", "WR-S1-0001", revision_number=1, created_at="2026-01-02T00:00:00+00:00"),
        draft("wr-2", "WR-S1-0002"),
    ])

    latest = client.get("/work-requests", params={"site_id": "site-1"}, headers=auth_headers("pe-1"))
    everything = client.get(
        "/work-requests",
        params={"site_id": "site-1", "include_superseded": True},
        headers=auth_headers("pe-1"),
    )

    assert latest.status_code == 200
    assert sorted(d["id"] for d in latest.json()) == ["wr-1b", "wr-2"]
    assert len(everything.json()) == 3


def test_history_lists_family_oldest_first(client: TestClient, fake_db):
    fake_db.add_user("pe-1", "PE")
    fake_db.rows("work_requests").extend([
        draft("wr-1b", "WR-S1-0001", revision_number=1),
        draft("wr-1", "WR-S1-0001", is_latest=False),
    ])

    response = client.get("/work-requests/wr-1b/history", headers=auth_headers("pe-1"))

    assert response.status_code == 200
    assert [d["id"] for d in response.json()] == ["wr-1", "wr-1b"]


def test_list_requires_membership(client: TestClient, fake_db):
    fake_db.add_user("pe-9", "PE", sites=["site-9"])

    response = client.get("/work-requests", params={"site_id": "site-1"}, headers=auth_headers("pe-9"))
    assert response.status_code == 403


def test_executor_resubmits_after_revision_request(client: TestClient, fake_db, mock_blobs):
    fake_db.add_user("bim-1", "BIM")
    fake_db.rows("work_requests").append(draft("wr-1", "WR-S1-0001", status="REVISION_REQUESTED"))

    response = client.post(
        "/work-requests/wr-1/revisions",
        json={
            "files": [{"file_name": "as-built.pdf", "file_path": "temp/bim-1/as-built.pdf"}],
            "comments": "clash resolved",
        },
        headers=auth_headers("bim-1"),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["document_number"] == "WR-S1-0001"
    assert body["revision_number"] == 1
    assert body["status"] == "PENDING_ACCEPTANCE"

    rows = {r["id"]: r for r in fake_db.rows("work_requests")}
    assert rows["wr-1"]["is_latest"] is False
    assert rows[body["id"]]["created_by"] == "pe-1"
    assert rows[body["id"]]["workflow"][0]["user_id"] == "bim-1"


def test_creator_without_execute_cannot_resubmit(client: TestClient, fake_db):
    fake_db.add_user("pe-1", "PE")
    fake_db.rows("work_requests").append(draft("wr-1", "WR-S1-0001", status="REVISION_REQUESTED"))

    response = client.post(
        "/work-requests/wr-1/revisions",
        json={"files": [{"file_name": "v2.pdf", "file_path": "temp/pe-1/v2.pdf"}]},
        headers=auth_headers("pe-1"),
    )

    assert response.status_code == 403
    assert "WORK_REQUEST.execute" in response.json()["detail"]
    assert len(fake_db.rows("work_requests")) == 1


def test_resubmit_requires_site_membership(client: TestClient, fake_db):
    fake_db.add_user("bim-9", "BIM", sites=["site-9"])
    fake_db.rows("work_requests").append(draft("wr-1", "WR-S1-0001", status="REVISION_REQUESTED"))

    response = client.post(
        "/work-requests/wr-1/revisions",
        json={"files": [{"file_name": "v2.pdf", "file_path": "temp/bim-9/v2.pdf"}]},
        headers=auth_headers("bim-9"),
    )
    assert response.status_code == 403


def test_batch_skips_documents_at_other_sites(client: TestClient, fake_db):
    fake_db.add_user("pm-1", "PM")
    fake_db.rows("work_requests").extend([
        draft("wr-1", "WR-S1-0001"),
        draft("wr-2", "WR-S2-0001", site_id="site-2"),
    ])

    response = client.post(
        "/work-requests/batch-transition",
        json={"ids": ["wr-1", "wr-2"], "target_status": "PENDING_BIM"},
        headers=auth_headers("pm-1"),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["updated"] == ["wr-1"]
    assert body["errors"][0]["id"] == "wr-2"
    rows = {r["id"]: r for r in fake_db.rows("work_requests")}
    assert rows["wr-2"]["status"] == "DRAFT"

# tests/test_notifications.py

"""
Tests for push endpoint registry, fan-out and nightly cleanup.
"""

from unittest.mock import Mock

import pytest
import requests
from fastapi.testclient import TestClient

from conftest import FakeSupabase, auth_headers
from core.notifications import (
    NotificationFanout,
    PushRegistry,
    dispatch_notification,
    users_with_roles,
)
from jobs.prune_push_endpoints import run as prune_push_endpoints
from models.notification import NotificationRequest


GATEWAY = "https://push.example.com/send"


def gateway_response(status_code=200, error=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = {"results": [{"error": error} if error else {"message_id": "1"}]}
    return response


@pytest.fixture
def db():
    return FakeSupabase()


@pytest.fixture
def registry(db):
    return PushRegistry(db)


@pytest.fixture
def session():
    session = Mock()
    session.post.return_value = gateway_response()
    return session


@pytest.fixture
def fanout(db, session):
    return NotificationFanout(db, gateway_url=GATEWAY, server_key="k", timeout=1, session=session)


# -----------------------------------------------------
# Registry
# -----------------------------------------------------
def test_register_is_idempotent(db, registry):
    registry.register("u1", "tok-a")
    registry.register("u1", "tok-a")

    assert len(db.rows("push_endpoints")) == 1


def test_register_revives_invalid_endpoint(db, registry):
    registry.register("u1", "tok-a")
    registry.flag_invalid(["tok-a"])
    assert registry.endpoints_for(["u1"]) == []

    registry.register("u1", "tok-a")
    assert registry.endpoints_for(["u1"]) == ["tok-a"]


def test_endpoints_are_deduplicated(registry):
    registry.register("u1", "tok-a")
    registry.register("u1", "tok-b")
    registry.register("u2", "tok-a")

    assert sorted(registry.endpoints_for(["u1", "u2", "u1"])) == ["tok-a", "tok-b"]


def test_remove_endpoint(db, registry):
    registry.register("u1", "tok-a")

    assert registry.remove("u1", "tok-a") == 1
    assert registry.remove("u1", "tok-a") == 0


# -----------------------------------------------------
# Fan-out
# -----------------------------------------------------
def test_send_without_endpoints_reports_nothing(fanout, session):
    report = fanout.send(["nobody"], "t", "b")

    assert report.success_count == 0
    assert report.failure_count == 0
    session.post.assert_not_called()


def test_send_pushes_each_endpoint_once(fanout, registry, session):
    registry.register("u1", "tok-a")
    registry.register("u2", "tok-b")

    report = fanout.send(["u1", "u2", "u2"], "RFS-001 → APPROVED", "body", "/rfa/1")

    assert report.success_count == 2
    assert session.post.call_count == 2
    _, kwargs = session.post.call_args
    assert kwargs["headers"]["Authorization"] == "key=k"
    assert kwargs["json"]["data"]["url"] == "/rfa/1"


def test_one_failure_does_not_block_others(fanout, registry, session):
    registry.register("u1", "tok-a")
    registry.register("u2", "tok-b")
    session.post.side_effect = [requests.ConnectionError("reset"), gateway_response()]

    report = fanout.send(["u1", "u2"], "t", "b")

    assert report.success_count == 1
    assert report.failure_count == 1
    assert report.invalid_endpoints == []


@pytest.mark.parametrize("response", [
    gateway_response(error="NotRegistered"),
    gateway_response(error="InvalidRegistration"),
    gateway_response(status_code=410),
])
def test_gone_endpoints_are_flagged(db, fanout, registry, session, response):
    registry.register("u1", "tok-a")
    session.post.return_value = response

    report = fanout.send(["u1"], "t", "b")

    assert report.invalid_endpoints == ["tok-a"]
    assert db.rows("push_endpoints")[0]["invalid"] is True


def test_transient_error_is_not_flagged(db, fanout, registry, session):
    registry.register("u1", "tok-a")
    session.post.return_value = gateway_response(error="Unavailable")

    report = fanout.send(["u1"], "t", "b")

    assert report.failure_count == 1
    assert db.rows("push_endpoints")[0]["invalid"] is False


def test_unconfigured_gateway_counts_failures(db, registry):
    registry.register("u1", "tok-a")

    report = NotificationFanout(db, gateway_url="", session=Mock()).send(["u1"], "t", "b")

    assert report.success_count == 0
    assert report.failure_count == 1


def test_registry_errors_are_swallowed(db, fanout):
    db.fail_tables["push_endpoints"] = "timeout"

    report = fanout.send(["u1"], "t", "b")
    assert report.success_count == 0


# -----------------------------------------------------
# Role resolution
# -----------------------------------------------------
def test_users_with_roles_filters_site_and_status(db):
    db.add_user("cm-1", "CM")
    db.add_user("cm-2", "CM", sites=["site-2"])
    db.add_user("cm-3", "CM", status="DISABLED")
    db.add_user("pd-1", "PD")

    assert sorted(users_with_roles(db, "site-1", ["CM", "PD"])) == ["cm-1", "pd-1"]
    assert users_with_roles(db, "site-1", []) == []


def test_dispatch_merges_roles_and_users(db):
    db.add_user("cm-1", "CM")
    fanout = Mock()

    dispatch_notification(fanout, db, NotificationRequest(
        site_id="site-1", title="t", body="b", url="/rfa/1",
        recipient_roles=["CM"], recipient_user_ids=["bim-1"],
    ))

    user_ids = fanout.send.call_args[0][0]
    assert user_ids == ["bim-1", "cm-1"]


def test_dispatch_never_raises(db):
    fanout = Mock()
    fanout.send.side_effect = RuntimeError("boom")

    report = dispatch_notification(fanout, db, NotificationRequest(
        site_id="site-1", title="t", body="b", url="/", recipient_user_ids=["u1"],
    ))
    assert report.success_count == 0


# -----------------------------------------------------
# Cleanup job
# -----------------------------------------------------
def test_prune_job_removes_only_invalid(db, registry):
    registry.register("u1", "tok-a")
    registry.register("u1", "tok-b")
    registry.flag_invalid(["tok-b"])

    assert prune_push_endpoints(db) == 1
    assert [r["token"] for r in db.rows("push_endpoints")] == ["tok-a"]


def test_scheduler_registers_nightly_job(monkeypatch):
    from core import scheduler as scheduler_module

    started = Mock()
    monkeypatch.setattr(scheduler_module.BackgroundScheduler, "start", started)

    scheduler = scheduler_module.start_scheduler()
    job = scheduler.get_job("prune_push_endpoints")

    assert job is not None
    assert "hour='3'" in str(job.trigger)
    started.assert_called_once()


# -----------------------------------------------------
# API
# -----------------------------------------------------
def test_register_device_endpoint(client: TestClient, fake_db):
    fake_db.add_user("bim-1", "BIM")

    response = client.post("/notifications/devices", json={"token": "tok-a"}, headers=auth_headers("bim-1"))

    assert response.status_code == 200
    assert fake_db.rows("push_endpoints")[0]["user_id"] == "bim-1"

    removed = client.request(
        "DELETE", "/notifications/devices", json={"token": "tok-a"}, headers=auth_headers("bim-1")
    )
    assert removed.json() == {"removed": 1}


def test_send_endpoint_is_admin_only(client: TestClient, fake_db, mock_fanout):
    fake_db.add_user("admin-1", "Admin")
    fake_db.add_user("bim-1", "BIM")
    payload = {"user_ids": ["bim-1"], "title": "Hello", "body": "Site closed tomorrow"}

    denied = client.post("/notifications/send", json=payload, headers=auth_headers("bim-1"))
    assert denied.status_code == 403

    sent = client.post("/notifications/send", json=payload, headers=auth_headers("admin-1"))
    assert sent.status_code == 200
    assert sent.json()["success_count"] == 1
    mock_fanout.send.assert_called_once_with(["bim-1"], "Hello", "Site closed tomorrow", None)

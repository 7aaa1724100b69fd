"""HTTP-level tests for the ballot token API."""

from datetime import timedelta

import pytest
from werkzeug.middleware.proxy_fix import ProxyFix

from ballotbox import create_app
from ballotbox.models.audit_log import AuditLog
from ballotbox.models.ballot_token import BallotToken
from ballotbox.models.user import User
from ballotbox.models.voter import Voter
from ballotbox.services.election_gate import save_schedule
from ballotbox.utils.clock import utcnow

from conftest import SAMPLE_CODE, TestConfig


@pytest.fixture
def open_election(app):
    save_schedule(status="open")


def _error(resp):
    body = resp.get_json()
    assert body["success"] is False
    return body["error"]


# ============================================
# PLUMBING
# ============================================


def test_health_and_request_id(client):
    resp = client.get("/health", headers={"X-Request-Id": "req-123"})

    assert resp.status_code == 200
    assert resp.headers["X-Request-Id"] == "req-123"


def test_unknown_route_uses_error_envelope(client):
    resp = client.get("/api/nothing-here")

    assert resp.status_code == 404
    assert _error(resp)["code"] == "NOT_FOUND"
    assert resp.get_json()["request_id"] == resp.headers["X-Request-Id"]


# ============================================
# AUTH
# ============================================


def test_login_and_me(client, worker_user):
    resp = client.post("/api/auth/login", json={"username": "station1", "password": "Passw0rd123"})
    assert resp.status_code == 200
    access = resp.get_json()["access_token"]

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {access}"})
    assert me.status_code == 200
    assert me.get_json()["user"]["role"] == User.ROLE_POLL_WORKER


def test_login_wrong_password(client, worker_user):
    resp = client.post("/api/auth/login", json={"username": "station1", "password": "nope"})

    assert resp.status_code == 401
    assert AuditLog.query.filter_by(action="LOGIN_FAILED_INVALID_CREDENTIALS").count() == 1


def test_login_validation_error(client):
    resp = client.post("/api/auth/login", json={"username": "station1"})

    assert resp.status_code == 400
    error = _error(resp)
    assert error["code"] == "VALIDATION_ERROR"
    assert "password" in error["details"]


def test_login_is_rate_limited(app, client, worker_user):
    app.config["RATE_LIMITS"] = dict(app.config["RATE_LIMITS"], login=(2, 15))

    for _ in range(2):
        client.post("/api/auth/login", json={"username": "station1", "password": "nope"})
    resp = client.post("/api/auth/login", json={"username": "station1", "password": "Passw0rd123"})

    assert resp.status_code == 429
    assert _error(resp)["code"] == "RATE_LIMITED"


def test_successful_login_clears_attempt_counter(app, client, worker_user):
    app.config["RATE_LIMITS"] = dict(app.config["RATE_LIMITS"], login=(2, 15))

    client.post("/api/auth/login", json={"username": "station1", "password": "nope"})
    ok = client.post("/api/auth/login", json={"username": "station1", "password": "Passw0rd123"})
    assert ok.status_code == 200

    codes = [
        client.post("/api/auth/login", json={"username": "station1", "password": "nope"}).status_code
        for _ in range(3)
    ]

    assert codes == [401, 401, 429]


def test_logout_revokes_token(client, worker_headers):
    assert client.post("/api/auth/logout", headers=worker_headers).status_code == 200
    assert client.get("/api/auth/me", headers=worker_headers).status_code == 401


def test_admin_creates_poll_worker(client, admin_headers):
    resp = client.post(
        "/api/auth/users",
        json={"username": "station2", "password": "Kiosk2pass", "role": "POLL_WORKER"},
        headers=admin_headers,
    )

    assert resp.status_code == 201
    assert User.query.filter_by(username="station2").one().role == User.ROLE_POLL_WORKER


def test_weak_password_rejected(client, admin_headers):
    resp = client.post(
        "/api/auth/users",
        json={"username": "station2", "password": "12345678"},
        headers=admin_headers,
    )
    assert resp.status_code == 400


# ============================================
# ELECTION STATUS
# ============================================


def test_election_status_is_public(client):
    resp = client.get("/api/election/status")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["status"] == "closed"
    assert body["scheduled_open"] is None


def test_only_admin_sets_election_status(client, worker_headers, admin_headers):
    denied = client.put("/api/election/status", json={"status": "open"}, headers=worker_headers)
    assert denied.status_code == 403
    assert _error(denied)["code"] == "FORBIDDEN"

    resp = client.put("/api/election/status", json={"status": "open"}, headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["election"]["status"] == "open"
    assert AuditLog.query.filter_by(action="ELECTION_STATUS_UPDATED").count() == 1


def test_election_status_validation(client, admin_headers):
    resp = client.put(
        "/api/election/status",
        json={"status": "scheduled", "open_time": "2026-02-01T15:00:00", "close_time": "2026-02-01T08:00:00"},
        headers=admin_headers,
    )
    assert resp.status_code == 400


def test_scheduled_future_election_refuses_activation(client, admin_headers, worker_headers, make_voter, make_token):
    make_voter("1001")
    make_token()
    opens = (utcnow() + timedelta(days=2)).replace(microsecond=0).isoformat() + "Z"
    client.put("/api/election/status", json={"status": "scheduled", "open_time": opens}, headers=admin_headers)

    resp = client.post("/api/tokens/activate", json={"code": SAMPLE_CODE, "voter_id": "1001"}, headers=worker_headers)

    assert resp.status_code == 403
    error = _error(resp)
    assert error["code"] == "ELECTION_CLOSED"
    assert error["details"]["reopens_at"]
    assert BallotToken.query.filter_by(code=SAMPLE_CODE).one().status == BallotToken.STATUS_INACTIVE


# ============================================
# BALLOT FLOW
# ============================================


def test_full_ballot_flow(client, admin_headers, worker_headers, open_election):
    party = client.post("/api/parties", json={"name": "Progress Party", "number": 1}, headers=admin_headers)
    assert party.status_code == 201
    party_id = party.get_json()["party"]["id"]

    imported = client.post(
        "/api/voters/import",
        json={"voters": [{"voter_id": "1001", "first_name": "Somchai", "last_name": "Dee", "level": "L1"}]},
        headers=admin_headers,
    )
    assert imported.get_json()["created"] == 1

    batch = client.post("/api/tokens/batches", json={"count": 3}, headers=admin_headers)
    assert batch.status_code == 201
    code = batch.get_json()["tokens"][0]

    activated = client.post(
        "/api/tokens/activate",
        json={"code": code.lower(), "voter_id": "1001", "station_level": "L1"},
        headers=worker_headers,
    )
    assert activated.status_code == 200
    assert "30 minutes" in activated.get_json()["warning"]

    wrong = client.post("/api/tokens/scan", json={"code": code, "station_level": "L2"})
    assert wrong.status_code == 403
    assert _error(wrong)["code"] == "WRONG_STATION"

    scanned = client.post("/api/tokens/scan", json={"code": code, "station_level": "L1"})
    assert scanned.status_code == 200
    assert scanned.get_json()["token"]["status"] == "voting"
    assert "voter_id" not in scanned.get_json()["token"]

    voted = client.post("/api/votes", json={"code": code, "party_id": party_id})
    assert voted.status_code == 201
    assert voted.get_json()["station_level"] == "L1"

    again = client.post("/api/votes", json={"code": code, "party_id": party_id})
    assert again.status_code == 409
    assert _error(again)["details"] == {"current_state": "used"}

    scores = client.get("/api/results/scores").get_json()
    assert scores["total_votes"] == 1
    assert scores["parties"][0]["votes"] == 1
    assert scores["parties"][0]["percentage"] == 100.0

    stats = client.get("/api/results/stats", headers=worker_headers).get_json()
    assert stats["tokens"]["used"] == 1
    assert stats["tokens"]["inactive"] == 2
    assert stats["voters"]["voted"] == 1
    assert stats["votes_by_station"] == {"L1": 1}

    assert Voter.query.filter_by(voter_id="1001").one().vote_status == Voter.STATUS_VOTED


def test_activation_audit_row_has_no_token_code(client, worker_headers, open_election, make_voter, make_token):
    make_voter("1001")
    make_token()

    resp = client.post("/api/tokens/activate", json={"code": SAMPLE_CODE, "voter_id": "1001"}, headers=worker_headers)
    assert resp.status_code == 200

    row = AuditLog.query.filter_by(action="BALLOT_ISSUED").one()
    assert row.entity_id == "1001"
    assert SAMPLE_CODE not in str(row.details)


def test_activation_requires_operator(client, open_election, make_voter, make_token):
    make_voter("1001")
    make_token()

    resp = client.post("/api/tokens/activate", json={"code": SAMPLE_CODE, "voter_id": "1001"})
    assert resp.status_code == 401


def test_scan_is_rate_limited(app, client, make_token):
    app.config["RATE_LIMITS"] = dict(app.config["RATE_LIMITS"], validate=(2, 1))
    make_token()

    codes = [client.post("/api/tokens/scan", json={"code": SAMPLE_CODE}).status_code for _ in range(3)]

    assert codes == [403, 403, 429]


def test_scan_limit_ignores_forwarded_for_header(app, client, make_token):
    app.config["RATE_LIMITS"] = dict(app.config["RATE_LIMITS"], validate=(2, 1))
    make_token()

    codes = [
        client.post(
            "/api/tokens/scan",
            json={"code": SAMPLE_CODE},
            headers={"X-Forwarded-For": f"203.0.113.{n}"},
        ).status_code
        for n in range(3)
    ]

    assert codes == [403, 403, 429]


def test_audit_row_records_peer_address(client, worker_user):
    client.post(
        "/api/auth/login",
        json={"username": "station1", "password": "nope"},
        headers={"X-Forwarded-For": "203.0.113.9"},
    )

    row = AuditLog.query.filter_by(action="LOGIN_FAILED_INVALID_CREDENTIALS").one()
    assert row.ip_address == "127.0.0.1"


def test_proxy_fix_trusts_configured_hops():
    class ProxiedConfig(TestConfig):
        PROXY_FIX_X_FOR = 1

    proxied = create_app(ProxiedConfig)
    plain = create_app(TestConfig)

    assert isinstance(proxied.wsgi_app, ProxyFix)
    assert not isinstance(plain.wsgi_app, ProxyFix)


def test_vote_needs_one_choice(client):
    resp = client.post("/api/votes", json={"code": SAMPLE_CODE, "party_id": 1, "abstain": True})
    assert resp.status_code == 400
    assert _error(resp)["code"] == "VALIDATION_ERROR"


def test_poll_worker_cannot_create_batches(client, worker_headers):
    resp = client.post("/api/tokens/batches", json={"count": 3}, headers=worker_headers)
    assert resp.status_code == 403


def test_batch_over_limit(client, admin_headers):
    resp = client.post("/api/tokens/batches", json={"count": 500}, headers=admin_headers)
    assert resp.status_code == 400


def test_cancel_batch_endpoint(client, admin_headers):
    batch_id = client.post("/api/tokens/batches", json={"count": 2}, headers=admin_headers).get_json()["batch_id"]

    listed = client.get("/api/tokens/batches", headers=admin_headers).get_json()["batches"]
    assert [b["batch_id"] for b in listed] == [batch_id]

    resp = client.delete(f"/api/tokens/batches/{batch_id}", headers=admin_headers)
    assert resp.status_code == 200
    assert resp.get_json()["deleted"] == 2

    missing = client.delete(f"/api/tokens/batches/{batch_id}", headers=admin_headers)
    assert missing.status_code == 404


def test_sweep_endpoint(client, admin_headers):
    resp = client.post("/api/tokens/sweep", json={"timeout_minutes": 30}, headers=admin_headers)

    assert resp.status_code == 200
    assert resp.get_json()["expired_count"] == 0


# ============================================
# ADMINISTRATION
# ============================================


def test_reset_votes_clears_voter_status(client, admin_headers, make_voter, make_token):
    make_voter("1001", vote_status=Voter.STATUS_ABSENT)
    make_token()

    resp = client.post("/api/admin/reset", json={"mode": "votes", "confirm": True}, headers=admin_headers)

    assert resp.status_code == 200
    assert BallotToken.query.count() == 0
    assert Voter.query.filter_by(voter_id="1001").one().vote_status is None


def test_reset_requires_confirmation(client, admin_headers):
    resp = client.post("/api/admin/reset", json={"mode": "all", "confirm": False}, headers=admin_headers)
    assert resp.status_code == 400


def test_audit_log_listing(client, admin_headers):
    client.put("/api/election/status", json={"status": "closed"}, headers=admin_headers)

    resp = client.get("/api/admin/audit-logs?action=ELECTION_STATUS_UPDATED", headers=admin_headers)

    assert resp.status_code == 200
    assert resp.get_json()["total"] == 1


def test_voter_lookup(client, worker_headers, make_voter):
    make_voter("1001")

    found = client.get("/api/voters/1001", headers=worker_headers)
    assert found.status_code == 200
    assert found.get_json()["voter"]["first_name"] == "Somchai"

    assert client.get("/api/voters/4040", headers=worker_headers).status_code == 404


# ============================================
# CLI
# ============================================


def test_sweep_tokens_command(cli_runner):
    result = cli_runner.invoke(args=["sweep-tokens", "--timeout", "30"])

    assert result.exit_code == 0
    assert "expired=0" in result.output


def test_create_admin_command(cli_runner):
    result = cli_runner.invoke(args=["create-admin", "chief", "Chief2026pass"])

    assert result.exit_code == 0
    user = User.query.filter_by(username="chief").one()
    assert user.role == User.ROLE_ADMIN
    assert user.check_password("Chief2026pass")

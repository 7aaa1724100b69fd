"""Tests for the expiry sweep of activated but unscanned tokens."""

from datetime import timedelta

import pytest

from ballotbox.models.ballot_token import BallotToken
from ballotbox.models.voter import Voter
from ballotbox.services import expiry_sweeper
from ballotbox.services.exceptions import AlreadyAbsentError
from ballotbox.services.expiry_sweeper import sweep_expired_tokens
from ballotbox.services.token_lifecycle import activate_token, scan_token

from conftest import ELECTION_DAY, SAMPLE_CODE

T = ELECTION_DAY


@pytest.fixture
def activated_for_1002(open_gate, worker_user, make_voter, make_token):
    make_voter("1002")
    make_token()
    activate_token(SAMPLE_CODE, "1002", str(worker_user.id), "L1", open_gate, now=T)


def _token():
    return BallotToken.query.filter_by(code=SAMPLE_CODE).one()


def _voter():
    return Voter.query.filter_by(voter_id="1002").one()


def test_not_expired_before_timeout(activated_for_1002):
    result = sweep_expired_tokens(30, now=T + timedelta(minutes=29))

    assert result.expired_count == 0
    assert _token().status == BallotToken.STATUS_ACTIVATED
    assert _voter().vote_status is None


def test_not_expired_exactly_at_timeout(activated_for_1002):
    result = sweep_expired_tokens(30, now=T + timedelta(minutes=30))

    assert result.expired_count == 0
    assert _token().status == BallotToken.STATUS_ACTIVATED


def test_expired_after_timeout_marks_voter_absent(activated_for_1002):
    result = sweep_expired_tokens(30, now=T + timedelta(minutes=31))

    token = _token()
    assert result.expired_count == 1
    assert result.absent_count == 1
    assert result.absent_voter_ids == ["1002"]
    assert token.status == BallotToken.STATUS_EXPIRED
    assert token.expired_at == T + timedelta(minutes=31)
    assert token.voter_id is None
    assert _voter().vote_status == Voter.STATUS_ABSENT


def test_absent_voter_cannot_get_a_new_token(activated_for_1002, open_gate, worker_user, make_token):
    sweep_expired_tokens(30, now=T + timedelta(minutes=31))
    make_token(code="RSL-WXYZ-23456789")

    with pytest.raises(AlreadyAbsentError):
        activate_token("RSL-WXYZ-23456789", "1002", str(worker_user.id), "L1", open_gate,
                       now=T + timedelta(minutes=32))


def test_scanned_token_is_left_alone(activated_for_1002, open_gate):
    scan_token(SAMPLE_CODE, "L1", open_gate, now=T + timedelta(minutes=5))

    result = sweep_expired_tokens(30, now=T + timedelta(minutes=45))

    assert result.expired_count == 0
    assert _token().status == BallotToken.STATUS_VOTING
    assert _voter().vote_status is None


def test_lost_race_is_skipped_and_absent_mark_undone(monkeypatch, activated_for_1002):
    monkeypatch.setattr(expiry_sweeper, "compare_and_set", lambda *args, **kwargs: False)

    result = sweep_expired_tokens(30, now=T + timedelta(minutes=31))

    assert result.expired_count == 0
    assert result.skipped_count == 1
    assert result.absent_count == 0
    assert _voter().vote_status is None
    assert _token().status == BallotToken.STATUS_ACTIVATED


def test_inactive_and_used_tokens_are_ignored(app, make_token):
    make_token(code="RSL-WXYZ-23456789")
    make_token(code="RSL-QRST-23456789", status=BallotToken.STATUS_USED)

    result = sweep_expired_tokens(30, now=T + timedelta(days=1))

    assert result.expired_count == 0
    assert result.skipped_count == 0


def test_default_timeout_from_config(app, activated_for_1002):
    app.config["TOKEN_EXPIRY_MINUTES"] = 10

    result = sweep_expired_tokens(now=T + timedelta(minutes=11))

    assert result.expired_count == 1


def test_negative_timeout_rejected(app):
    with pytest.raises(ValueError):
        sweep_expired_tokens(-5)


def test_zero_timeout_rejected(app):
    app.config["TOKEN_EXPIRY_MINUTES"] = 30

    with pytest.raises(ValueError):
        sweep_expired_tokens(0)

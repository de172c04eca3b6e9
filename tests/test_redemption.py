import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

import audit
import codes
import redemption
from errors import (
    CodeConflictError,
    CodeExhaustedError,
    CodeExpiredError,
    CodeNotFoundError,
    CodeRevokedError,
    InvalidInputError,
)
from models import PromoCode, RedemptionLog
from prizes import Prize, PrizeSelector


def issue_one(db, **kwargs):
    (promo,) = codes.issue(db, 1, **kwargs)
    return promo.code


def uses_count(session_factory, token):
    with session_factory() as session:
        return codes.lookup(session, token).uses_count


def test_check_eligibility_is_read_only(db):
    token = issue_one(db, uses_allowed=3)

    for _ in range(5):
        result = redemption.check_eligibility(db, token.lower())
        assert result.code == token
        assert result.remaining == 3

    assert codes.lookup(db, token).uses_count == 0


def test_check_eligibility_unknown_code(db):
    with pytest.raises(CodeNotFoundError):
        redemption.check_eligibility(db, "ZZZZ9999")


def test_expired_code_never_consumed(db):
    issued_at = datetime.now(timezone.utc) - timedelta(days=3)
    token = issue_one(db, ttl_days=1, now=issued_at)

    with pytest.raises(CodeExpiredError):
        redemption.check_eligibility(db, token)
    with pytest.raises(CodeExpiredError):
        redemption.play(db, token, "ana")

    assert codes.lookup(db, token).uses_count == 0
    assert audit.list_records(db) == []


def test_revoked_code_cannot_be_played(db):
    token = issue_one(db)
    assert codes.revoke(db, token) == 1

    with pytest.raises(CodeRevokedError):
        redemption.check_eligibility(db, token)
    with pytest.raises(CodeRevokedError):
        redemption.play(db, token, "ana")
    assert audit.list_records(db) == []


def test_revoked_wins_over_exhausted(db):
    token = issue_one(db)
    redemption.play(db, token, "ana")
    codes.revoke(db, token)

    with pytest.raises(CodeRevokedError):
        redemption.check_eligibility(db, token)


def test_fixed_prize_code_always_pays_fixed_prize(db):
    token = issue_one(db, uses_allowed=3, prize_value=5.0, prize_label="R$5,00")
    selector = PrizeSelector(pool=(Prize("jackpot", 1000.0, 1),), rng=random.Random(1))

    for player in ("ana", "bia", "caio"):
        award = redemption.play(db, token, player, selector=selector)
        assert award.prize == Prize("R$5,00", 5.0)

    assert {r.prize_label for r in audit.list_records(db)} == {"R$5,00"}


def test_play_twice_then_exhausted(db):
    token = issue_one(db, uses_allowed=2)

    first = redemption.play(db, token, "ana", chest_index=0)
    second = redemption.play(db, token, "bia", chest_index=5)

    assert (first.remaining, second.remaining) == (1, 0)
    assert first.record_id != second.record_id
    assert codes.lookup(db, token).uses_count == 2

    with pytest.raises(CodeExhaustedError):
        redemption.play(db, token, "caio")

    records = audit.list_for_code(db, token)
    assert [(r.player, r.chest_index) for r in records] == [("bia", 5), ("ana", 0)]
    assert codes.lookup(db, token).uses_count == 2


def test_chest_choice_does_not_change_prize(db):
    token_a = issue_one(db)
    token_b = issue_one(db)

    award_a = redemption.play(db, token_a, "ana", chest_index=0, selector=PrizeSelector(rng=random.Random(9)))
    award_b = redemption.play(db, token_b, "bia", chest_index=4, selector=PrizeSelector(rng=random.Random(9)))

    assert award_a.prize == award_b.prize


def test_player_name_is_trimmed_and_logged(db):
    token = issue_one(db)
    redemption.play(db, token, "  Ana Souza  ")

    (record,) = audit.list_records(db)
    assert record.player == "Ana Souza"
    assert record.code == token


@pytest.mark.parametrize(
    "player, chest_index",
    [
        ("", None),
        ("   ", None),
        (None, None),
        ("x" * 500, None),
        ("ana", -1),
        ("ana", 6),
    ],
)
def test_play_rejects_invalid_input(db, player, chest_index):
    token = issue_one(db)

    with pytest.raises(InvalidInputError):
        redemption.play(db, token, player, chest_index=chest_index)
    assert codes.lookup(db, token).uses_count == 0


def test_lost_race_awards_nothing(db, monkeypatch):
    token = issue_one(db)
    redemption.play(db, token, "winner")

    # Pretend this caller read the code before the winner committed
    monkeypatch.setattr(redemption, "_validate", lambda promo, now: None)

    with pytest.raises(CodeConflictError) as exc:
        redemption.play(db, token, "late")

    assert isinstance(exc.value, CodeExhaustedError)
    assert [r.player for r in audit.list_records(db)] == ["winner"]
    assert codes.lookup(db, token).uses_count == 1


def test_revoke_during_play_reports_revoked(db, monkeypatch):
    token = issue_one(db)
    # The play read the code before the admin revoked it
    monkeypatch.setattr(redemption, "_validate", lambda promo, now: None)
    codes.revoke(db, token)

    with pytest.raises(CodeRevokedError):
        redemption.play(db, token, "ana")

    assert audit.list_records(db) == []
    assert codes.lookup(db, token).uses_count == 0


def test_log_failure_rolls_back_consumption(db, monkeypatch):
    token = issue_one(db)

    def broken_append(*args, **kwargs):
        raise SQLAlchemyError("disk full")

    monkeypatch.setattr(audit, "append", broken_append)

    with pytest.raises(SQLAlchemyError):
        redemption.play(db, token, "ana")

    monkeypatch.undo()
    assert codes.lookup(db, token).uses_count == 0
    assert audit.list_records(db) == []
    # The code is still playable afterwards
    assert redemption.play(db, token, "ana").remaining == 0


def test_concurrent_plays_single_winner(session_factory):
    with session_factory() as session:
        token = issue_one(session)

    racers = 8
    barrier = threading.Barrier(racers)

    def attempt(i):
        with session_factory() as session:
            barrier.wait()
            try:
                return redemption.play(session, token, f"player-{i}")
            except CodeExhaustedError:
                return None

    with ThreadPoolExecutor(max_workers=racers) as pool:
        results = list(pool.map(attempt, range(racers)))

    winners = [r for r in results if r is not None]
    assert len(winners) == 1
    assert results.count(None) == racers - 1

    with session_factory() as session:
        assert session.query(RedemptionLog).count() == 1
        promo = session.query(PromoCode).one()
        assert promo.uses_count == promo.uses_allowed == 1


def test_concurrent_plays_never_exceed_uses_allowed(session_factory):
    with session_factory() as session:
        token = issue_one(session, uses_allowed=3)

    racers = 10
    barrier = threading.Barrier(racers)

    def attempt(i):
        with session_factory() as session:
            barrier.wait()
            try:
                redemption.play(session, token, f"player-{i}")
                return True
            except CodeExhaustedError:
                return False

    with ThreadPoolExecutor(max_workers=racers) as pool:
        results = list(pool.map(attempt, range(racers)))

    assert results.count(True) == 3
    assert uses_count(session_factory, token) == 3
    with session_factory() as session:
        assert session.query(RedemptionLog).count() == 3

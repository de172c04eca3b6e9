# redemption.py
"""
Code redemption: the read-only eligibility check and the play transaction.

``play`` re-validates the code, draws the prize, consumes one use with a
conditional UPDATE and appends the audit row, then commits once. The
increment and the log row are a single database transaction: if either
write fails nothing is kept and the player gets no prize.
"""
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import audit
import codes
from config import CHEST_COUNT, MAX_PLAYER_LENGTH
from errors import (
    CodeConflictError,
    CodeExhaustedError,
    CodeExpiredError,
    CodeRevokedError,
    InvalidInputError,
)
from logger import logger
from models import PromoCode
from prizes import Prize, PrizeSelector

_default_selector = PrizeSelector()


@dataclass(frozen=True)
class Eligibility:
    code: str
    remaining: int


@dataclass(frozen=True)
class PrizeAward:
    code: str
    prize: Prize
    remaining: int
    chest_index: int | None
    record_id: int


def _validate(promo: PromoCode, now: datetime) -> None:
    # Revoked and expired are terminal, so they win over exhaustion
    if promo.revoked:
        raise CodeRevokedError(promo.code)
    if codes.is_expired(promo, now):
        raise CodeExpiredError(promo.code)
    if promo.uses_count >= promo.uses_allowed:
        raise CodeExhaustedError(promo.code)


def check_eligibility(db: Session, token: str, now: datetime | None = None) -> Eligibility:
    """Validate a code without consuming it. Safe to call any number of times."""
    now = now or datetime.now(timezone.utc)
    promo = codes.lookup(db, token)
    _validate(promo, now)
    return Eligibility(code=promo.code, remaining=promo.remaining)


def _clean_player(player: str) -> str:
    name = (player or "").strip()
    if not name:
        raise InvalidInputError("player required")
    if len(name) > MAX_PLAYER_LENGTH:
        raise InvalidInputError(f"player must be at most {MAX_PLAYER_LENGTH} characters")
    return name


def _check_chest(chest_index: int | None) -> None:
    if chest_index is None:
        return
    if not 0 <= chest_index < CHEST_COUNT:
        raise InvalidInputError(f"chest index must be between 0 and {CHEST_COUNT - 1}")


def play(
    db: Session,
    token: str,
    player: str,
    chest_index: int | None = None,
    selector: PrizeSelector | None = None,
    now: datetime | None = None,
) -> PrizeAward:
    """
    Consume one use of ``token`` and award a prize to ``player``.

    ``chest_index`` is the slot the player opened; it is logged and has no
    influence on the draw.
    """
    player = _clean_player(player)
    _check_chest(chest_index)
    selector = selector or _default_selector
    now = now or datetime.now(timezone.utc)

    # A prior check proves nothing, time may have passed
    promo = codes.lookup(db, token)
    _validate(promo, now)

    prize = selector.select(promo)

    code_val, uses_allowed = promo.code, promo.uses_allowed
    try:
        uses_count = codes.mark_consumed(db, promo.id)
        record = audit.append(db, promo, player, prize, chest_index=chest_index, now=now)
        record_id = record.id
        db.commit()
    except CodeConflictError:
        db.rollback()
        logger.warning(f"Play on {code_val} by {player!r} lost the race for the last use")
        raise
    except CodeRevokedError:
        db.rollback()
        logger.warning(f"Play on {code_val} by {player!r} hit a revoke in flight")
        raise
    except SQLAlchemyError:
        db.rollback()
        raise

    remaining = max(0, uses_allowed - uses_count)
    logger.info(
        f"Code {code_val} played by {player!r} (chest {chest_index}): "
        f"{prize.label}, {remaining} uses left"
    )
    return PrizeAward(
        code=code_val,
        prize=prize,
        remaining=remaining,
        chest_index=chest_index,
        record_id=record_id,
    )

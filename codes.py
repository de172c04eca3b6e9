# codes.py
from datetime import datetime, timedelta, timezone
import secrets
from typing import Callable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import (
    CODE_LENGTH,
    DEFAULT_LIST_LIMIT,
    ISSUE_MAX_ATTEMPTS,
    MAX_ISSUE_COUNT,
)
from errors import (
    CodeConflictError,
    CodeGenerationError,
    CodeNotFoundError,
    CodeRevokedError,
    InvalidInputError,
)
from logger import logger
from models import PromoCode

# Drop 0/O/1/I to avoid confusion
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def normalize_code(token: str) -> str:
    return (token or "").strip().upper()


def random_code(length: int = CODE_LENGTH) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(length))


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_expired(promo: PromoCode, now: datetime) -> bool:
    expires_at = as_utc(promo.expires_at)
    return expires_at is not None and expires_at < now


def lookup(db: Session, token: str) -> PromoCode:
    code_val = normalize_code(token)
    if not code_val:
        raise InvalidInputError("code required")

    stmt = select(PromoCode).where(PromoCode.code == code_val)
    promo: PromoCode | None = db.execute(stmt).scalar_one_or_none()
    if promo is None:
        raise CodeNotFoundError(code_val)
    return promo


def _insert_code(
    db: Session,
    *,
    token_factory: Callable[[], str],
    uses_allowed: int,
    created_at: datetime,
    expires_at: datetime | None,
    prize_value: float | None,
    prize_label: str | None,
) -> PromoCode:
    for attempt in range(1, ISSUE_MAX_ATTEMPTS + 1):
        promo = PromoCode(
            code=normalize_code(token_factory()),
            uses_allowed=uses_allowed,
            uses_count=0,
            created_at=created_at,
            expires_at=expires_at,
            prize_value=prize_value,
            prize_label=prize_label,
            revoked=False,
        )
        db.add(promo)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(
                f"Token collision on {promo.code} (attempt {attempt}/{ISSUE_MAX_ATTEMPTS}), retrying"
            )
            continue
        return promo

    raise CodeGenerationError(
        f"no free token after {ISSUE_MAX_ATTEMPTS} attempts"
    )


def issue(
    db: Session,
    count: int,
    *,
    uses_allowed: int = 1,
    ttl_days: int | None = None,
    prize_value: float | None = None,
    prize_label: str | None = None,
    token_factory: Callable[[], str] = random_code,
    now: datetime | None = None,
) -> list[PromoCode]:
    """
    Create ``count`` new codes.

    Each code is committed on its own so a token collision only retries that
    one insert. ``ttl_days`` of None or <= 0 means the codes never expire.
    If the retry budget runs out, the CodeGenerationError lists the codes
    that were already committed.
    """
    if count < 1 or count > MAX_ISSUE_COUNT:
        raise InvalidInputError(f"count must be between 1 and {MAX_ISSUE_COUNT}")
    if uses_allowed < 1:
        raise InvalidInputError("uses_allowed must be positive")
    if prize_value is not None and prize_value < 0:
        raise InvalidInputError("prize value must not be negative")
    if prize_value is None and prize_label:
        raise InvalidInputError("prize label needs a prize value")

    created_at = now or datetime.now(timezone.utc)
    expires_at: datetime | None = None
    if ttl_days is not None and ttl_days > 0:
        expires_at = created_at + timedelta(days=ttl_days)

    label = prize_label.strip() if prize_label else None
    codes: list[PromoCode] = []
    for _ in range(count):
        try:
            promo = _insert_code(
                db,
                token_factory=token_factory,
                uses_allowed=uses_allowed,
                created_at=created_at,
                expires_at=expires_at,
                prize_value=prize_value,
                prize_label=label or None,
            )
        except CodeGenerationError as e:
            e.created = [c.code for c in codes]
            logger.error(f"Issuance stopped after {len(codes)} of {count} codes: {e}")
            raise
        codes.append(promo)

    logger.info(
        f"Issued {len(codes)} codes (uses_allowed={uses_allowed}, expires_at={expires_at}, "
        f"fixed_prize={prize_value})"
    )
    return codes


def mark_consumed(db: Session, code_id: int) -> int:
    """
    Consume one use of a code and return the new uses_count.

    The increment is one conditional UPDATE; zero affected rows means a
    concurrent play took the last use, or an admin revoked the code in the
    meantime. Does not commit.
    """
    stmt = (
        update(PromoCode)
        .where(
            PromoCode.id == code_id,
            PromoCode.uses_count < PromoCode.uses_allowed,
            PromoCode.revoked.is_(False),
        )
        .values(uses_count=PromoCode.uses_count + 1)
        .execution_options(synchronize_session=False)
    )
    result = db.execute(stmt)
    if result.rowcount != 1:
        row = db.execute(
            select(PromoCode.code, PromoCode.revoked).where(PromoCode.id == code_id)
        ).one_or_none()
        if row is not None and row.revoked:
            raise CodeRevokedError(row.code)
        raise CodeConflictError(row.code if row is not None else str(code_id))

    return db.execute(
        select(PromoCode.uses_count).where(PromoCode.id == code_id)
    ).scalar_one()


def revoke(db: Session, token: str, now: datetime | None = None) -> int:
    """Disable a code for good. Returns affected rows; 0 for unknown or already revoked."""
    code_val = normalize_code(token)
    if not code_val:
        raise InvalidInputError("code required")

    stmt = (
        update(PromoCode)
        .where(PromoCode.code == code_val, PromoCode.revoked.is_(False))
        .values(revoked=True, revoked_at=now or datetime.now(timezone.utc))
        .execution_options(synchronize_session=False)
    )
    affected = db.execute(stmt).rowcount
    db.commit()

    if affected:
        logger.info(f"Code {code_val} revoked")
    else:
        logger.info(f"Revoke of {code_val} had no effect")
    return affected


def list_codes(db: Session, limit: int = DEFAULT_LIST_LIMIT) -> list[PromoCode]:
    stmt = select(PromoCode).order_by(PromoCode.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())

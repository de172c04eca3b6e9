# audit.py
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from codes import normalize_code
from config import DEFAULT_LIST_LIMIT
from models import PromoCode, RedemptionLog
from prizes import Prize


def append(
    db: Session,
    promo: PromoCode,
    player: str,
    prize: Prize,
    chest_index: int | None = None,
    now: datetime | None = None,
) -> RedemptionLog:
    """Add a redemption row inside the caller's transaction (flushed, not committed)."""
    record = RedemptionLog(
        code_id=promo.id,
        code=promo.code,
        player=player,
        prize_label=prize.label,
        prize_value=prize.value,
        chest_index=chest_index,
        created_at=now or datetime.now(timezone.utc),
    )
    db.add(record)
    db.flush()
    return record


def list_records(db: Session, limit: int = DEFAULT_LIST_LIMIT) -> list[RedemptionLog]:
    stmt = select(RedemptionLog).order_by(RedemptionLog.id.desc()).limit(limit)
    return list(db.execute(stmt).scalars())


def list_for_code(db: Session, token: str) -> list[RedemptionLog]:
    stmt = (
        select(RedemptionLog)
        .where(RedemptionLog.code == normalize_code(token))
        .order_by(RedemptionLog.id.desc())
    )
    return list(db.execute(stmt).scalars())

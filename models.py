# models.py
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class PromoCode(Base):
    __tablename__ = "promo_codes"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(64), unique=True, index=True, nullable=False)

    uses_allowed = Column(Integer, nullable=False, default=1)
    uses_count = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=True)

    # Fixed prize; when prize_value is set the random pool is bypassed
    prize_label = Column(String(64), nullable=True)
    prize_value = Column(Float, nullable=True)

    revoked = Column(Boolean, nullable=False, default=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def remaining(self) -> int:
        return max(0, self.uses_allowed - self.uses_count)

    def __repr__(self):
        return (
            f"<PromoCode(id={self.id}, code={self.code}, "
            f"uses={self.uses_count}/{self.uses_allowed}, revoked={self.revoked})>"
        )


class RedemptionLog(Base):
    __tablename__ = "redemption_log"

    id = Column(Integer, primary_key=True, index=True)
    code_id = Column(Integer, ForeignKey("promo_codes.id"), nullable=False, index=True)
    code = Column(String(64), nullable=False)
    player = Column(String(128), nullable=False)

    # Snapshot, independent of later pool changes
    prize_label = Column(String(64), nullable=False)
    prize_value = Column(Float, nullable=False)

    chest_index = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


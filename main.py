# main.py
from datetime import datetime
import secrets
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import audit
import codes
import config
import redemption
from db import get_db
from errors import PromoError
from logger import log_error, logger

app = FastAPI(title="Treasure Promo Service", version="1.0.0")


def require_admin(token: Optional[str]):
    if not config.PROMO_ADMIN_TOKEN:
        # If you forget to set it, block admin completely
        raise HTTPException(status_code=500, detail="admin_token_not_configured")
    if not token or not secrets.compare_digest(token, config.PROMO_ADMIN_TOKEN):
        raise HTTPException(status_code=403, detail="forbidden")


def admin_guard(x_admin_token: Optional[str] = Header(None)):
    require_admin(x_admin_token)


# --------------------------------------------------------------------
# Error mapping
# --------------------------------------------------------------------

@app.exception_handler(PromoError)
async def promo_error_handler(request: Request, exc: PromoError):
    return JSONResponse(status_code=exc.status_code, content=exc.body())


@app.exception_handler(SQLAlchemyError)
async def storage_error_handler(request: Request, exc: SQLAlchemyError):
    log_error(exc)
    return JSONResponse(status_code=500, content={"detail": "server_error"})


# --------------------------------------------------------------------
# Schemas
# --------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RedeemIn(CamelModel):
    # Optional so a missing code reports invalid_input like a blank one
    code: Optional[str] = None


class RedeemOut(CamelModel):
    ok: bool
    code: str
    remaining: int


class PlayIn(CamelModel):
    code: Optional[str] = None
    player: Optional[str] = Field(None, validation_alias=AliasChoices("player", "username"))
    chest_index: Optional[int] = None


class PrizeOut(CamelModel):
    label: str
    value: float


class PlayOut(CamelModel):
    prize: PrizeOut
    code: str
    remaining: int
    chest_index: Optional[int] = None


class FixedPrizeIn(CamelModel):
    label: Optional[str] = None
    value: float


class IssueIn(CamelModel):
    count: int = 1
    uses_allowed: int = 1
    # Absent, null or <= 0 means the codes never expire
    ttl_days: Optional[int] = None
    fixed_prize: Optional[FixedPrizeIn] = None


class CodeOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    uses_allowed: int
    uses_count: int
    created_at: datetime
    expires_at: Optional[datetime]
    prize_label: Optional[str]
    prize_value: Optional[float]
    revoked: bool


class IssueOut(CamelModel):
    codes: list[CodeOut]
    count: int


class RevokeIn(CamelModel):
    code: Optional[str] = None


class RevokeOut(CamelModel):
    ok: bool
    affected: int


class CodesOut(CamelModel):
    codes: list[CodeOut]


class LogOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    player: str
    prize_label: str
    prize_value: float
    chest_index: Optional[int]
    created_at: datetime


class LogsOut(CamelModel):
    logs: list[LogOut]


# --------------------------------------------------------------------
# Health check
# --------------------------------------------------------------------

@app.get("/healthz")
async def healthz():
    return {"ok": True}


# --------------------------------------------------------------------
# Public: check and play a code
# --------------------------------------------------------------------

@app.post("/api/redeem", response_model=RedeemOut)
def redeem_code(body: RedeemIn, db: Session = Depends(get_db)):
    result = redemption.check_eligibility(db, body.code)
    return RedeemOut(ok=True, code=result.code, remaining=result.remaining)


@app.post("/api/play", response_model=PlayOut)
def play_code(body: PlayIn, db: Session = Depends(get_db)):
    award = redemption.play(db, body.code, body.player, chest_index=body.chest_index)
    return PlayOut(
        prize=PrizeOut(label=award.prize.label, value=award.prize.value),
        code=award.code,
        remaining=award.remaining,
        chest_index=award.chest_index,
    )


# --------------------------------------------------------------------
# Admin: issue, revoke, list
# --------------------------------------------------------------------

@app.post("/admin/issue", response_model=IssueOut, dependencies=[Depends(admin_guard)])
def admin_issue(body: IssueIn, db: Session = Depends(get_db)):
    prize = body.fixed_prize
    created = codes.issue(
        db,
        body.count,
        uses_allowed=body.uses_allowed,
        ttl_days=body.ttl_days,
        prize_value=prize.value if prize else None,
        prize_label=prize.label if prize else None,
    )
    out = [CodeOut.model_validate(c) for c in created]
    return IssueOut(codes=out, count=len(out))


@app.post("/admin/revoke", response_model=RevokeOut, dependencies=[Depends(admin_guard)])
def admin_revoke(body: RevokeIn, db: Session = Depends(get_db)):
    affected = codes.revoke(db, body.code)
    return RevokeOut(ok=True, affected=affected)


@app.get("/admin/codes", response_model=CodesOut, dependencies=[Depends(admin_guard)])
def admin_codes(
    limit: int = Query(config.DEFAULT_LIST_LIMIT, ge=1, le=config.DEFAULT_LIST_LIMIT),
    db: Session = Depends(get_db),
):
    return CodesOut(codes=[CodeOut.model_validate(c) for c in codes.list_codes(db, limit)])


@app.get("/admin/logs", response_model=LogsOut, dependencies=[Depends(admin_guard)])
def admin_logs(
    limit: int = Query(config.DEFAULT_LIST_LIMIT, ge=1, le=config.DEFAULT_LIST_LIMIT),
    code: Optional[str] = Query(None, description="only this code's redemptions"),
    db: Session = Depends(get_db),
):
    if code:
        records = audit.list_for_code(db, code)[:limit]
    else:
        records = audit.list_records(db, limit)
    return LogsOut(logs=[LogOut.model_validate(r) for r in records])


if __name__ == "__main__":
    import uvicorn

    logger.info(f"Treasure promo service on {config.API_HOST}:{config.API_PORT}")
    uvicorn.run(app, host=config.API_HOST, port=config.API_PORT)

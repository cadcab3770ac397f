import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from presale_api.db import get_db
from presale_api.deps import get_settings, http_error, require_api_key
from presale_api.errors import PresaleError
from presale_api.models import utcnow
from presale_api.services.allocator import quote, remaining_capacity
from presale_api.services.presale_query import load_status, run_sync
from presale_api.services.purchase import to_reference_amount
from presale_api.services.stage_store import SqlStageStore
from presale_api.settings import Settings

router = APIRouter()
log = logging.getLogger("presale")


@router.get("/presale")
def presale_status(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """현재 스테이지 / 전체 스테이지 / 집계"""
    try:
        return load_status(db, utcnow(), settings)
    except PresaleError as exc:
        log.error("presale status failed: %s", exc)
        raise http_error(exc)


@router.get("/presale/quote")
def presale_quote(
    amount: float = Query(...),
    currency: str = Query(default="USDT"),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """구매 전 토큰 수량 미리보기 (DB 변경 없음)"""
    try:
        amount_ref = to_reference_amount(amount, currency, settings)
        stages = SqlStageStore(db, lock=False).list_stages()
        available = remaining_capacity(stages, settings.token_decimals)
        q = quote(stages, amount_ref, decimals=settings.token_decimals)
    except PresaleError as exc:
        raise http_error(exc)
    return {
        "currency": currency.strip().upper(),
        "amount": amount,
        "amount_reference": amount_ref,
        "remaining_capacity": available,
        "accepted": amount_ref <= available,
        **q.as_dict(),
    }


@router.post("/presale/sync", dependencies=[Depends(require_api_key)])
def presale_sync(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    """스테이지 동기화 강제 실행"""
    try:
        result = run_sync(db, utcnow(), settings)
    except PresaleError as exc:
        log.error("presale sync failed: %s", exc)
        raise http_error(exc)
    return {
        "ok": True,
        "current_stage": result.current_stage.stage_number,
        "changes": [c.describe() for c in result.changes],
    }

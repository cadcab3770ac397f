import logging
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from presale_api.db import get_db
from presale_api.deps import get_buyer_email, get_settings, http_error
from presale_api.errors import PresaleError
from presale_api.models import utcnow
from presale_api.services.purchase import process_purchase, serialize_slip, list_slips, get_slip
from presale_api.settings import Settings

router = APIRouter()
log = logging.getLogger("slips")


class BuyRequest(BaseModel):
    wallet_address: str = Field(..., min_length=1, description="구매자 지갑 주소")
    currency: str = Field(..., min_length=1, description="USDT / USDC / SOL")
    amount_paid: float = Field(..., description="결제 통화 기준 금액")
    tokens_requested: float | None = Field(default=None, description="프론트 예상 수량 (참고용)")
    tx_signature: str | None = None


@router.post("/slip/buy")
def buy_slip(
    req: BuyRequest,
    buyer_email: str = Depends(get_buyer_email),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    try:
        result = process_purchase(
            db,
            buyer_email=buyer_email,
            wallet_address=req.wallet_address.strip(),
            currency=req.currency,
            amount_paid=req.amount_paid,
            now=utcnow(),
            settings=settings,
            tokens_requested=req.tokens_requested,
            tx_signature=req.tx_signature,
        )
    except PresaleError as exc:
        log.warning("slip creation failed for %s: %s", buyer_email, exc)
        raise http_error(exc)
    return {
        "message": "Slip created successfully",
        "slip": serialize_slip(result.slip),
        "allocation": result.allocation.as_dict(),
        "current_stage": result.sync.current_stage.stage_number,
    }


@router.get("/slips")
def my_slips(buyer_email: str = Depends(get_buyer_email), db: Session = Depends(get_db)):
    return {"items": [serialize_slip(s) for s in list_slips(db, buyer_email)]}


@router.get("/slips/{redeem_code}")
def slip_by_code(redeem_code: str, db: Session = Depends(get_db)):
    s = get_slip(db, redeem_code)
    if not s:
        raise HTTPException(404, "not found")
    return serialize_slip(s)

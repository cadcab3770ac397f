"""
프리세일 구매 처리 (슬립 발행)

한 트랜잭션 안에서:
  통화 환산 → 동기화 → 잔여 용량 검사 → 스테이지 배분 → 구매자 누적 갱신
  → 슬립 생성(교환 코드) → 재동기화 → 이벤트 기록 → commit
실패 시 전체 rollback. 재시도는 하지 않는다.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from presale_api.errors import CapacityExceededError, UnsupportedCurrencyError
from presale_api.models import Buyer, Slip
from presale_api.services.allocator import Allocation, allocate, remaining_capacity, validate_amount
from presale_api.services.events import add_event, notify_stage_changes, record_stage_changes
from presale_api.services.stage_store import SqlStageStore
from presale_api.services.stage_sync import SyncResult, synchronize, sync_options

log = logging.getLogger("purchase")


@dataclass
class PurchaseResult:
    slip: Slip
    allocation: Allocation
    sync: SyncResult


def to_reference_amount(amount_paid: float, currency: str, settings) -> float:
    """결제 통화 금액 → 기준 통화(USDT) 금액."""
    rates = settings.currency_rates()
    code = (currency or "").strip().upper()
    if code not in rates:
        raise UnsupportedCurrencyError(f"unsupported currency: {currency!r} (accepted: {', '.join(sorted(rates))})")
    value = validate_amount(amount_paid)
    return round(value * rates[code], settings.token_decimals)


def new_redeem_code() -> str:
    return secrets.token_hex(8)


def process_purchase(
    db: Session,
    buyer_email: str,
    wallet_address: str,
    currency: str,
    amount_paid: float,
    now: datetime,
    settings,
    tokens_requested: float | None = None,
    tx_signature: str | None = None,
) -> PurchaseResult:
    amount_ref = to_reference_amount(amount_paid, currency, settings)
    opts = sync_options(settings)
    store = SqlStageStore(db)
    try:
        before = synchronize(store, now, **opts)

        available = remaining_capacity(before.stages, settings.token_decimals)
        if amount_ref > available:
            log.warning("purchase rejected: %s wants %.2f USDT, %.2f left", buyer_email, amount_ref, available)
            raise CapacityExceededError(amount_ref, available)

        allocation = allocate(store, amount_ref, stages=before.stages, decimals=settings.token_decimals)

        buyer = db.get(Buyer, buyer_email)
        if buyer is None:
            buyer = Buyer(email=buyer_email, spent=0.0, tokens_purchased=0.0)
            db.add(buyer)
        buyer.spent = (buyer.spent or 0.0) + amount_ref
        buyer.tokens_purchased = round((buyer.tokens_purchased or 0.0) + allocation.tokens, settings.token_decimals)

        slip = Slip(
            buyer_email=buyer_email,
            wallet_address=wallet_address,
            currency=currency.strip().upper(),
            amount_paid=float(amount_paid),
            amount_reference=amount_ref,
            tokens_purchased=allocation.tokens,
            tokens_requested=tokens_requested,
            tx_signature=tx_signature or None,
            redeem_code=new_redeem_code(),
            created_at=now,
        )
        db.add(slip)

        after = synchronize(store, now, stages=before.stages, **opts)
        changes = before.changes + after.changes

        record_stage_changes(db, changes)
        stages_touched = ", ".join(str(f.stage_number) for f in allocation.fills)
        add_event(db, "INFO", "purchase",
                  f"{buyer_email} paid {amount_ref:,.2f} {settings.reference_currency} "
                  f"for {allocation.tokens:,.8f} tokens (stages {stages_touched})",
                  stage_number=allocation.fills[0].stage_number if allocation.fills else None,
                  commit=False)
        db.commit()
    except Exception:
        db.rollback()
        raise

    log.info("slip %s: %s %.2f USDT -> %.8f tokens", slip.redeem_code, buyer_email, amount_ref, allocation.tokens)
    notify_stage_changes(changes, sold_out=after.sold_out)
    return PurchaseResult(slip=slip, allocation=allocation, sync=after)


def serialize_slip(s: Slip) -> dict:
    return {
        "id": s.id,
        "buyer_email": s.buyer_email,
        "wallet_address": s.wallet_address,
        "currency": s.currency,
        "amount_paid": s.amount_paid,
        "amount_reference": s.amount_reference,
        "tokens_purchased": s.tokens_purchased,
        "tokens_requested": s.tokens_requested,
        "tx_signature": s.tx_signature,
        "redeem_code": s.redeem_code,
        "created_at": s.created_at.isoformat(),
    }


def list_slips(db: Session, buyer_email: str) -> list[Slip]:
    return list(db.execute(
        select(Slip).where(Slip.buyer_email == buyer_email).order_by(Slip.created_at.desc(), Slip.id.desc())
    ).scalars().all())


def get_slip(db: Session, redeem_code: str) -> Slip | None:
    return db.execute(select(Slip).where(Slip.redeem_code == redeem_code)).scalars().first()

"""
프리세일 현황 조회
동기화 후 현재 스테이지 / 전체 스테이지 / 집계(판매 토큰, 잔여 공급량, 모금액) 반환
"""
from datetime import datetime
from sqlalchemy.orm import Session

from presale_api.services.allocator import TOKEN_DECIMALS, remaining_capacity
from presale_api.services.events import record_stage_changes, notify_stage_changes
from presale_api.services.stage_store import SqlStageStore
from presale_api.services.stage_sync import SyncResult, synchronize, sync_options, is_sold_out


def serialize_stage(s) -> dict:
    return {
        "id": s.id,
        "stage_number": s.stage_number,
        "start_time": s.start_time.isoformat(),
        "end_time": s.end_time.isoformat(),
        "target": s.target,
        "raised": s.raised,
        "remaining": max(s.target - s.raised, 0.0),
        "rate": s.rate,
        "listing_price": s.listing_price,
        "sold_out": is_sold_out(s),
    }


def tokens_sold(stages: list, decimals: int = TOKEN_DECIMALS) -> float:
    return round(sum(round(s.raised / s.rate, decimals) for s in stages), decimals)


def total_raised(stages: list, current) -> float:
    # 현재 스테이지 이전은 모두 목표 달성 상태
    completed = sum(s.target for s in stages if s.stage_number < current.stage_number)
    return completed + current.raised


def stage_markers(stages: list) -> list[dict]:
    total_cap = sum(s.target for s in stages)
    markers = []
    cumulative = 0.0
    for s in stages:
        cumulative += s.target
        pct = (cumulative / total_cap) * 100 if total_cap > 0 else 0.0
        markers.append({"stage_number": s.stage_number, "pct": round(pct, 4), "label": f"Stage {s.stage_number}"})
    return markers


def build_status(result: SyncResult, now: datetime, settings) -> dict:
    stages = result.stages
    current = result.current_stage
    decimals = settings.token_decimals
    sold = tokens_sold(stages, decimals)
    raised = total_raised(stages, current)
    total_cap = sum(s.target for s in stages)
    progress = (raised / total_cap) * 100 if total_cap > 0 else 0.0
    return {
        "stages": [serialize_stage(s) for s in stages],
        "current_stage": current.stage_number,
        "ends_at": current.end_time.isoformat(),
        "seconds_remaining": max(int((current.end_time - now).total_seconds()), 0),
        "rate": current.rate or settings.default_rate,
        "listing_price": current.listing_price or settings.default_listing_price,
        "sold_out": result.sold_out,
        "tokens_sold": sold,
        "tokens_remaining": max(settings.total_token_supply - sold, 0.0),
        "total_raised": raised,
        "total_cap": total_cap,
        "remaining_capacity": remaining_capacity(stages, decimals),
        "progress_pct": min(max(progress, 0.0), 100.0),
        "stage_markers": stage_markers(stages),
        "total_supply": settings.total_token_supply,
        "liquidity_at_launch": settings.liquidity_at_launch,
        "reference_currency": settings.reference_currency,
    }


def get_status(store, now: datetime, settings) -> dict:
    """동기화 + 집계 (store 는 임의의 StageStore)."""
    result = synchronize(store, now, **sync_options(settings))
    return build_status(result, now, settings)


def run_sync(db: Session, now: datetime, settings) -> SyncResult:
    """DB 스테이지 동기화 후 commit, 변경 이벤트 기록 및 알림."""
    store = SqlStageStore(db)
    try:
        result = synchronize(store, now, **sync_options(settings))
        record_stage_changes(db, result.changes)
        db.commit()
    except Exception:
        db.rollback()
        raise
    notify_stage_changes(result.changes, sold_out=result.sold_out)
    return result


def load_status(db: Session, now: datetime, settings) -> dict:
    return build_status(run_sync(db, now, settings), now, settings)

import argparse
import logging
from datetime import timedelta
from sqlalchemy import delete, inspect, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session
from presale_api.db import engine, Base
from presale_api.models import PresaleStage, Buyer, Slip, Event  # noqa: F401 – Base.metadata 등록용
from presale_api.settings import Settings

log = logging.getLogger("migrate")


def ensure_columns(bind: Engine | None = None):
    """create_all 이 추가하지 않는 신규 컬럼 보정."""
    with (bind or engine).begin() as conn:
        insp = inspect(conn)
        tables = set(insp.get_table_names())

        # ── presale_stages ──────────────────────────────────────────────────
        if "presale_stages" in tables:
            cols = {c["name"] for c in insp.get_columns("presale_stages")}
            if "version" not in cols:
                conn.execute(text("ALTER TABLE presale_stages ADD COLUMN version INTEGER NOT NULL DEFAULT 1"))
            if "updated_at" not in cols:
                conn.execute(text("ALTER TABLE presale_stages ADD COLUMN updated_at DATETIME NULL"))

        # ── slips ───────────────────────────────────────────────────────────
        if "slips" in tables:
            cols = {c["name"] for c in insp.get_columns("slips")}
            if "tokens_requested" not in cols:
                conn.execute(text("ALTER TABLE slips ADD COLUMN tokens_requested FLOAT NULL"))


def build_seed_stages(settings: Settings) -> list[PresaleStage]:
    """
    기본 스테이지 일정
    - stage_days 간격으로 시작, 종료는 다음 시작 하루 전
    - rate/target 은 스테이지마다 일정 폭 증가, 1단계만 기존 모금액 반영
    """
    stages = []
    for i in range(1, settings.seed_stage_count + 1):
        start = settings.seed_start + timedelta(days=(i - 1) * settings.seed_stage_days)
        end = start + timedelta(days=settings.seed_stage_days - 1)
        stages.append(PresaleStage(
            stage_number=i,
            start_time=start,
            end_time=end,
            rate=round(settings.default_rate + (i - 1) * settings.seed_rate_step, 8),
            listing_price=settings.default_listing_price,
            target=settings.seed_base_target + (i - 1) * settings.seed_target_step,
            raised=2_069_177.0 if i == 1 else 0.0,
        ))
    return stages


def seed_stages(db: Session, settings: Settings, reset: bool = False) -> int:
    """스테이지 시드. reset=False 이면 이미 있을 때 건너뜀."""
    if reset:
        db.execute(delete(PresaleStage))
    elif db.execute(select(PresaleStage.id).limit(1)).first():
        log.info("presale stages already seeded, skipping")
        return 0
    stages = build_seed_stages(settings)
    db.add_all(stages)
    db.commit()
    log.info("seeded %d presale stages", len(stages))
    return len(stages)


def run_all(seed: bool = False, reset: bool = False):
    # 1) ORM이 모르는 테이블은 create_all 로 생성
    Base.metadata.create_all(engine)
    # 2) 기존 테이블에 누락된 컬럼 추가
    ensure_columns()
    # 3) 스테이지 시드
    if seed or reset:
        with Session(engine) as db:
            seed_stages(db, Settings(), reset=reset)


def main():
    parser = argparse.ArgumentParser(description="presale-api schema migration / stage seeding")
    parser.add_argument("--seed", action="store_true", help="seed presale stages if none exist")
    parser.add_argument("--reset", action="store_true", help="delete and re-seed presale stages")
    args = parser.parse_args()
    logging.basicConfig(level=Settings().log_level)
    run_all(seed=args.seed, reset=args.reset)


if __name__ == "__main__":
    main()

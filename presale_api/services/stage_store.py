"""
스테이지 저장소
- SqlStageStore: SQLAlchemy 세션 기반. commit 은 호출자 책임 (구매 1건 = 트랜잭션 1개)
- MemoryStageStore: 인메모리 사본. 테스트 / 견적(quote) 계산용
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from presale_api.errors import ConcurrentUpdateError
from presale_api.models import PresaleStage

# 코어가 변경할 수 있는 컬럼은 이것뿐
MUTABLE_FIELDS = ("raised", "start_time", "end_time")


@dataclass
class StageRecord:
    stage_number: int
    start_time: datetime
    end_time: datetime
    target: float
    raised: float
    rate: float
    listing_price: float = 0.0
    id: int | None = None


class StageStore(Protocol):
    def list_stages(self) -> list: ...

    def update_stage(self, stage, **fields): ...

    def increment_raised(self, stage, delta: float): ...


def _check_fields(fields: dict) -> None:
    bad = set(fields) - set(MUTABLE_FIELDS)
    if bad:
        raise ValueError(f"immutable stage fields: {sorted(bad)}")


class SqlStageStore:
    def __init__(self, db: Session, lock: bool = True):
        self.db = db
        self.lock = lock

    def list_stages(self) -> list[PresaleStage]:
        q = select(PresaleStage).order_by(PresaleStage.stage_number.asc())
        if self.lock:
            # MySQL/PostgreSQL: 행 잠금, SQLite: 무시됨 (writer 직렬화)
            q = q.with_for_update()
        return list(self.db.execute(q).scalars().all())

    def update_stage(self, stage: PresaleStage, **fields) -> PresaleStage:
        _check_fields(fields)
        for name, value in fields.items():
            setattr(stage, name, value)
        self._flush()
        return stage

    def increment_raised(self, stage: PresaleStage, delta: float) -> PresaleStage:
        stage.raised = (stage.raised or 0.0) + delta
        self._flush()
        return stage

    def _flush(self) -> None:
        try:
            self.db.flush()
        except StaleDataError as exc:
            raise ConcurrentUpdateError(
                "presale stage was modified by another request, retry"
            ) from exc


class MemoryStageStore:
    def __init__(self, stages: Iterable[StageRecord]):
        self._stages = sorted(stages, key=lambda s: s.stage_number)
        self.writes = 0

    @classmethod
    def snapshot_of(cls, stages: Iterable) -> "MemoryStageStore":
        """ORM 행(또는 임의 stage 객체) 복사본으로 만든 저장소."""
        return cls(
            StageRecord(
                id=s.id,
                stage_number=s.stage_number,
                start_time=s.start_time,
                end_time=s.end_time,
                target=s.target,
                raised=s.raised,
                rate=s.rate,
                listing_price=s.listing_price,
            )
            for s in stages
        )

    def list_stages(self) -> list[StageRecord]:
        return list(self._stages)

    def update_stage(self, stage: StageRecord, **fields) -> StageRecord:
        _check_fields(fields)
        for name, value in fields.items():
            setattr(stage, name, value)
        self.writes += 1
        return stage

    def increment_raised(self, stage: StageRecord, delta: float) -> StageRecord:
        stage.raised += delta
        self.writes += 1
        return stage

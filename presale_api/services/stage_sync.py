"""
프리세일 스테이지 동기화

1) 목표 달성 스테이지 조기 종료: end_time = now + nudge
2) 현재 스테이지 = 첫 번째 미달성 스테이지 (없으면 마지막 스테이지)
3) 현재 스테이지가 미달성인데 기간이 지났으면 grace period(기본 7일) 단위로 연장
4) 변경이 시작된 가장 앞 스테이지 다음부터 각 스테이지 기간을 유지한 채
   직전 스테이지 end_time 에 이어 붙인다
5) 변경 후 현재 스테이지 재계산

같은 now 로 두 번 호출하면 두 번째 호출은 아무것도 바꾸지 않는다.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from presale_api.errors import EmptyStoreError

log = logging.getLogger("stage_sync")

GRACE_PERIOD = timedelta(days=7)
EARLY_CLOSE_NUDGE = timedelta(seconds=1)


@dataclass
class StageChange:
    stage_number: int
    kind: str  # closed_early, extended, shifted
    old_start: datetime
    old_end: datetime
    new_start: datetime
    new_end: datetime

    def describe(self) -> str:
        if self.kind == "closed_early":
            return f"Stage {self.stage_number} sold out, ended early at {self.new_end.isoformat()}"
        if self.kind == "extended":
            return (
                f"Stage {self.stage_number} extended from {self.old_end.isoformat()} "
                f"to {self.new_end.isoformat()}"
            )
        return (
            f"Stage {self.stage_number} shifted: start={self.new_start.isoformat()} "
            f"end={self.new_end.isoformat()}"
        )


@dataclass
class SyncResult:
    stages: list
    current_stage: object
    changes: list[StageChange] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.changes)

    @property
    def sold_out(self) -> bool:
        return all(is_sold_out(s) for s in self.stages)


def is_sold_out(stage) -> bool:
    return stage.raised >= stage.target


def find_current_index(stages: list) -> int:
    for i, stage in enumerate(stages):
        if stage.raised < stage.target:
            return i
    return len(stages) - 1


def sync_options(settings) -> dict:
    return {
        "grace_period": timedelta(days=settings.grace_period_days),
        "nudge": timedelta(seconds=settings.early_close_nudge_sec),
    }


def _grace_periods_needed(end_time: datetime, now: datetime, grace_period: timedelta) -> int:
    lapsed = now - end_time
    periods = lapsed // grace_period
    if lapsed % grace_period:
        periods += 1
    return max(periods, 1)


def synchronize(
    store,
    now: datetime,
    grace_period: timedelta = GRACE_PERIOD,
    nudge: timedelta = EARLY_CLOSE_NUDGE,
    stages: list | None = None,
) -> SyncResult:
    """
    스테이지 일정 보정

    Args:
        store: StageStore (list_stages / update_stage)
        now: 기준 시각 (naive UTC)
        stages: 이미 읽어 둔 정렬된 스테이지 목록 (없으면 store 에서 읽음)

    Returns:
        SyncResult(stages, current_stage, changes)
    """
    if grace_period <= timedelta(0):
        raise ValueError("grace_period must be positive")
    if stages is None:
        stages = store.list_stages()
    if not stages:
        raise EmptyStoreError()

    changes: list[StageChange] = []
    shift_from = None

    # 1) 조기 종료: 종료 시각은 앞당기기만 한다
    close_at = now + nudge
    for i, stage in enumerate(stages):
        if is_sold_out(stage) and stage.end_time > close_at:
            old_end = stage.end_time
            store.update_stage(stage, end_time=close_at)
            changes.append(StageChange(
                stage.stage_number, "closed_early",
                stage.start_time, old_end, stage.start_time, close_at,
            ))
            log.info("stage %s ended early at %s (scheduled %s)",
                     stage.stage_number, close_at.isoformat(), old_end.isoformat())
            if shift_from is None:
                shift_from = i

    # 2) 현재 스테이지
    cur = find_current_index(stages)
    current = stages[cur]

    # 3) 만료된 미달성 스테이지 연장 (이전 end_time 기준)
    if not is_sold_out(current) and current.end_time < now:
        old_end = current.end_time
        periods = _grace_periods_needed(old_end, now, grace_period)
        new_end = old_end + grace_period * periods
        store.update_stage(current, end_time=new_end)
        changes.append(StageChange(
            current.stage_number, "extended",
            current.start_time, old_end, current.start_time, new_end,
        ))
        log.info("stage %s extended to %s (%d x %s)",
                 current.stage_number, new_end.isoformat(), periods, grace_period)
        shift_from = cur if shift_from is None else min(shift_from, cur)

    # 4) 이후 스테이지 재배치
    if shift_from is not None:
        prev = stages[shift_from]
        for stage in stages[shift_from + 1:]:
            new_start = prev.end_time
            if is_sold_out(stage):
                # 이미 마감된 스테이지는 마감 시각 유지
                new_end = max(stage.end_time, new_start)
            else:
                new_end = new_start + (stage.end_time - stage.start_time)
            if new_start != stage.start_time or new_end != stage.end_time:
                old_start, old_end = stage.start_time, stage.end_time
                store.update_stage(stage, start_time=new_start, end_time=new_end)
                changes.append(StageChange(
                    stage.stage_number, "shifted", old_start, old_end, new_start, new_end,
                ))
                log.info("shifted stage %s: start=%s end=%s",
                         stage.stage_number, new_start.isoformat(), new_end.isoformat())
            prev = stage
    else:
        log.debug("no stage ended early or extended, no shift needed")

    # 5) 변경 후 현재 스테이지
    return SyncResult(stages=stages, current_stage=stages[find_current_index(stages)], changes=changes)

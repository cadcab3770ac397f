"""
구매 금액 스테이지 배분

결제 금액(USDT 환산)을 stage_number 오름차순으로 남은 용량만큼 채우고
스테이지별 가격(rate)으로 토큰 수량을 계산한다.
예) 1단계 잔여 10 USDT @0.1 + 2단계 20 USDT @0.2 → 100 + 100 = 200 토큰

모든 스테이지가 매진되어 남는 금액은 배분하지 않는다 (unallocated).
구매 서비스는 이 경우를 사전에 CapacityExceededError 로 거절한다.
"""
import logging
import math
from dataclasses import dataclass, field

from presale_api.errors import InvalidAmountError
from presale_api.services.stage_store import MemoryStageStore

log = logging.getLogger("allocator")

TOKEN_DECIMALS = 8


@dataclass
class StageFill:
    stage_number: int
    amount: float
    tokens: float
    rate: float


@dataclass
class Allocation:
    amount_paid: float
    tokens: float = 0.0
    fills: list[StageFill] = field(default_factory=list)
    unallocated: float = 0.0

    @property
    def allocated(self) -> float:
        return self.amount_paid - self.unallocated

    def as_dict(self) -> dict:
        return {
            "amount_paid": self.amount_paid,
            "allocated": self.allocated,
            "unallocated": self.unallocated,
            "tokens": self.tokens,
            "fills": [{
                "stage_number": f.stage_number,
                "amount": f.amount,
                "tokens": f.tokens,
                "rate": f.rate,
            } for f in self.fills],
        }


def validate_amount(amount) -> float:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidAmountError(f"invalid amount: {amount!r}")
    if not math.isfinite(value) or value <= 0:
        raise InvalidAmountError(f"amount must be a positive number, got {amount!r}")
    return value


def remaining_capacity(stages: list, decimals: int = TOKEN_DECIMALS) -> float:
    return round(sum(max(s.target - s.raised, 0.0) for s in stages), decimals)


def allocate(store, amount_paid: float, stages: list | None = None,
             decimals: int = TOKEN_DECIMALS) -> Allocation:
    """
    결제 금액을 스테이지에 배분하고 raised 를 증가시킨다

    Args:
        store: StageStore (list_stages / update_stage / increment_raised)
        amount_paid: 기준 통화(USDT) 금액, > 0
        stages: 이미 읽어 둔 정렬된 스테이지 목록 (없으면 store 에서 읽음)

    Returns:
        Allocation (tokens 는 스테이지별로 소수 8자리 반올림 후 합산)
    """
    remaining = validate_amount(amount_paid)
    result = Allocation(amount_paid=remaining)
    if stages is None:
        stages = store.list_stages()

    for stage in stages:
        if remaining <= 0:
            break
        if stage.raised >= stage.target:
            continue
        capacity = stage.target - stage.raised
        if remaining < capacity:
            store.increment_raised(stage, remaining)
            portion = remaining
        else:
            # 남은 용량 전부: raised 를 target 으로 정확히 맞춘다
            store.update_stage(stage, raised=stage.target)
            portion = capacity
        tokens = round(portion / stage.rate, decimals)
        result.tokens = round(result.tokens + tokens, decimals)
        result.fills.append(StageFill(stage.stage_number, portion, tokens, stage.rate))
        log.info("stage %s: +%.2f USDT -> %.8f tokens @%s",
                 stage.stage_number, portion, tokens, stage.rate)
        remaining = round(remaining - portion, decimals)

    if remaining > 0:
        result.unallocated = remaining
        log.warning("presale sold out: %.2f USDT of %.2f could not be allocated",
                    remaining, result.amount_paid)
    return result


def quote(stages: list, amount_paid: float, decimals: int = TOKEN_DECIMALS) -> Allocation:
    """DB 변경 없이 배분 결과 미리보기."""
    return allocate(MemoryStageStore.snapshot_of(stages), amount_paid, decimals=decimals)

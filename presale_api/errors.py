"""
프리세일 도메인 예외
라우터에서 HTTP 상태 코드로 변환한다 (코어에서는 재시도 없음).
"""


class PresaleError(Exception):
    status_code = 500


class EmptyStoreError(PresaleError):
    """스테이지가 하나도 없음 (시드 필요)."""
    status_code = 500

    def __init__(self, message: str = "No presale stages found."):
        super().__init__(message)


class InvalidAmountError(PresaleError):
    """0 이하 또는 유한하지 않은 결제 금액."""
    status_code = 400


class UnsupportedCurrencyError(PresaleError):
    status_code = 400


class CapacityExceededError(PresaleError):
    """남은 전체 스테이지 용량보다 큰 결제."""
    status_code = 409

    def __init__(self, requested: float, remaining: float):
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"amount {requested:,.2f} exceeds remaining presale capacity {remaining:,.2f}"
        )


class ConcurrentUpdateError(PresaleError):
    """다른 요청이 같은 스테이지 행을 먼저 갱신함 (version 불일치)."""
    status_code = 409

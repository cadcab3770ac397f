"""
구매 금액 스테이지 배분 테스트
"""
import math
import pytest

from presale_api.errors import InvalidAmountError
from presale_api.services.allocator import allocate, quote, remaining_capacity, validate_amount


class TestBoundaryCrossing:
    """스테이지 경계 넘는 구매"""

    def test_fills_first_stage_then_next(self, memory_store):
        store = memory_store([
            (-5, 10, 100.0, 90.0, 0.1),
            (10, 25, 100.0, 0.0, 0.2),
        ])
        result = allocate(store, 30.0)
        s1, s2 = store.list_stages()

        assert s1.raised == 100.0
        assert s2.raised == pytest.approx(20.0)
        assert result.tokens == pytest.approx(200.0)
        assert [f.stage_number for f in result.fills] == [1, 2]
        assert result.fills[0].tokens == pytest.approx(100.0)
        assert result.fills[1].tokens == pytest.approx(100.0)
        assert result.unallocated == 0.0

    def test_fits_in_current_stage(self, memory_store):
        store = memory_store([
            (-5, 10, 100.0, 0.0, 0.25),
            (10, 25, 100.0, 0.0, 0.5),
        ])
        result = allocate(store, 50.0)
        assert result.tokens == pytest.approx(200.0)
        assert store.list_stages()[1].raised == 0.0
        assert len(result.fills) == 1

    def test_exact_fill_marks_stage_sold_out(self, memory_store):
        store = memory_store([
            (-5, 10, 0.3, 0.1, 0.1),
            (10, 25, 100.0, 0.0, 0.2),
        ])
        result = allocate(store, 0.3 - 0.1)
        s1, s2 = store.list_stages()
        assert s1.raised == s1.target
        assert s2.raised == 0.0
        assert len(result.fills) == 1

    def test_skips_sold_out_stages(self, memory_store):
        store = memory_store([
            (-20, -5, 100.0, 100.0, 0.1),
            (-5, 10, 100.0, 0.0, 0.2),
        ])
        result = allocate(store, 10.0)
        assert [f.stage_number for f in result.fills] == [2]
        assert result.tokens == pytest.approx(50.0)


class TestConservation:
    """배분 합계 보존"""

    def test_raised_and_tokens_match_payments(self, memory_store):
        store = memory_store([
            (0, 10, 100.0, 0.0, 0.1),
            (10, 20, 50.0, 0.0, 0.2),
            (20, 30, 200.0, 0.0, 0.25),
        ])
        payments = [15.0, 40.0, 5.5, 60.0, 33.25]
        tokens = 0.0
        for amount in payments:
            tokens += allocate(store, amount).tokens

        stages = store.list_stages()
        assert sum(s.raised for s in stages) == pytest.approx(sum(payments))
        assert tokens == pytest.approx(sum(s.raised / s.rate for s in stages))
        assert all(s.raised <= s.target for s in stages)

    def test_tokens_rounded_to_8_decimals(self, memory_store):
        store = memory_store([(0, 10, 100.0, 0.0, 0.0037)])
        result = allocate(store, 1.0)
        assert result.tokens == round(1.0 / 0.0037, 8)


class TestSoldOutTruncation:
    """전체 매진 시 초과 금액은 배분하지 않음"""

    def test_excess_dropped(self, memory_store):
        store = memory_store([
            (-5, 10, 100.0, 90.0, 0.1),
            (10, 25, 100.0, 90.0, 0.2),
        ])
        result = allocate(store, 50.0)
        stages = store.list_stages()

        assert result.tokens == pytest.approx(100.0 + 50.0)
        assert result.unallocated == pytest.approx(30.0)
        assert result.allocated == pytest.approx(20.0)
        assert all(s.raised == s.target for s in stages)

    def test_nothing_left(self, memory_store):
        store = memory_store([(-5, 10, 100.0, 100.0, 0.1)])
        result = allocate(store, 10.0)
        assert result.tokens == 0.0
        assert result.fills == []
        assert result.unallocated == 10.0
        assert store.writes == 0


class TestValidation:
    """금액 검증"""

    @pytest.mark.parametrize("amount", [0, -1, -0.01, math.inf, math.nan, "abc", None])
    def test_invalid_amount(self, memory_store, amount):
        store = memory_store([(-5, 10, 100.0, 0.0, 0.1)])
        with pytest.raises(InvalidAmountError):
            allocate(store, amount)
        assert store.writes == 0

    def test_validate_amount_accepts_numeric_string(self):
        assert validate_amount("12.5") == 12.5


class TestQuote:
    """견적 (DB 변경 없음)"""

    def test_quote_does_not_mutate(self, memory_store):
        store = memory_store([
            (-5, 10, 100.0, 90.0, 0.1),
            (10, 25, 100.0, 0.0, 0.2),
        ])
        stages = store.list_stages()
        result = quote(stages, 30.0)
        assert result.tokens == pytest.approx(200.0)
        assert [s.raised for s in stages] == [90.0, 0.0]
        assert store.writes == 0

    def test_remaining_capacity(self, memory_store):
        stages = memory_store([
            (-5, 10, 100.0, 90.0, 0.1),
            (10, 25, 100.0, 100.0, 0.2),
            (25, 40, 50.0, 0.0, 0.3),
        ]).list_stages()
        assert remaining_capacity(stages) == pytest.approx(60.0)

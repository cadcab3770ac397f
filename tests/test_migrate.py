"""
스키마 보정 / 스테이지 시드 테스트
"""
import pytest
from datetime import datetime

from conftest import engine, make_settings
from presale_api.migrate import build_seed_stages, ensure_columns, seed_stages
from presale_api.models import PresaleStage


class TestSeed:
    """기본 스테이지 시드"""

    def test_default_schedule(self):
        stages = build_seed_stages(make_settings())
        assert len(stages) == 11
        first, last = stages[0], stages[-1]
        assert first.start_time == datetime(2025, 3, 15)
        assert first.end_time == datetime(2025, 3, 30)
        assert stages[1].start_time == datetime(2025, 3, 31)
        assert first.rate == pytest.approx(0.0037)
        assert last.rate == pytest.approx(0.0067)
        assert first.target == 4_110_000
        assert last.target == 5_110_000
        assert first.raised == 2_069_177.0
        assert all(s.raised == 0.0 for s in stages[1:])
        assert [s.stage_number for s in stages] == list(range(1, 12))

    def test_seed_skips_when_present(self, db_session):
        settings = make_settings(SEED_STAGE_COUNT=3)
        assert seed_stages(db_session, settings) == 3
        assert seed_stages(db_session, settings) == 0
        assert db_session.query(PresaleStage).count() == 3

    def test_reset_reseeds(self, db_session):
        seed_stages(db_session, make_settings(SEED_STAGE_COUNT=3))
        assert seed_stages(db_session, make_settings(SEED_STAGE_COUNT=5), reset=True) == 5
        assert db_session.query(PresaleStage).count() == 5

    def test_ensure_columns_is_noop_on_current_schema(self, db_session):
        ensure_columns(engine)
        ensure_columns(engine)
        assert db_session.query(PresaleStage).count() == 0

"""
pytest 설정 및 공통 fixtures
"""
import pytest
from datetime import datetime, timedelta
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from presale_api.db import Base, get_db
from presale_api.deps import get_settings
from presale_api.models import PresaleStage, utcnow
from presale_api.services.stage_store import MemoryStageStore, StageRecord
from presale_api.settings import Settings


# 테스트용 SQLite DB
SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

NOW = datetime(2025, 4, 1, 12, 0, 0)
DAY = timedelta(days=1)


def make_settings(**overrides) -> Settings:
    values = {"API_KEY": None, "TELEGRAM_BOT_TOKEN": "", "TELEGRAM_CHAT_ID": ""}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def stage_rows(layout, now=NOW):
    """
    (start_offset_days, end_offset_days, target, raised, rate) 목록 → StageRecord 목록
    offset 은 now 기준
    """
    return [
        StageRecord(
            id=i,
            stage_number=i,
            start_time=now + timedelta(days=start),
            end_time=now + timedelta(days=end),
            target=target,
            raised=raised,
            rate=rate,
            listing_price=0.005,
        )
        for i, (start, end, target, raised, rate) in enumerate(layout, start=1)
    ]


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def memory_store():
    """스테이지 정의 목록으로 MemoryStageStore 생성"""
    def _make(layout, now=NOW):
        return MemoryStageStore(stage_rows(layout, now))
    return _make


@pytest.fixture(scope="function")
def db_session():
    """테스트용 DB 세션"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def seed_db(db_session):
    """스테이지 정의 목록으로 presale_stages 행 생성"""
    def _seed(layout, now=NOW):
        rows = []
        for rec in stage_rows(layout, now):
            row = PresaleStage(
                stage_number=rec.stage_number,
                start_time=rec.start_time,
                end_time=rec.end_time,
                target=rec.target,
                raised=rec.raised,
                rate=rec.rate,
                listing_price=rec.listing_price,
            )
            db_session.add(row)
            rows.append(row)
        db_session.commit()
        return rows
    return _seed


@pytest.fixture
def client(db_session):
    """TestClient (DB/Settings 의존성 교체)"""
    from fastapi.testclient import TestClient
    from presale_api.main import app

    test_settings = make_settings(API_KEY="test-key")

    def _get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: test_settings
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def live_stages(seed_db):
    """현재 시각 기준 3단계 (1단계 진행 중)"""
    return seed_db([
        (-5, 10, 100.0, 90.0, 0.1),
        (10, 25, 100.0, 0.0, 0.2),
        (25, 40, 200.0, 0.0, 0.25),
    ], now=utcnow())

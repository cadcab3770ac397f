from datetime import datetime, timezone
from sqlalchemy import String, Integer, DateTime, Text, Float
from sqlalchemy.orm import Mapped, mapped_column
from presale_api.db import Base


def utcnow() -> datetime:
    # DB 에는 naive UTC 로 저장
    return datetime.now(timezone.utc).replace(tzinfo=None)


class PresaleStage(Base):
    __tablename__ = "presale_stages"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    stage_number: Mapped[int] = mapped_column(Integer, unique=True, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime)
    end_time: Mapped[datetime] = mapped_column(DateTime)
    target: Mapped[float] = mapped_column(Float)               # USDT
    raised: Mapped[float] = mapped_column(Float, default=0.0)  # USDT
    rate: Mapped[float] = mapped_column(Float)                 # USDT per token
    listing_price: Mapped[float] = mapped_column(Float, default=0.0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    # optimistic lock: UPDATE ... WHERE version = :old
    __mapper_args__ = {"version_id_col": version}


class Buyer(Base):
    __tablename__ = "buyers"
    email: Mapped[str] = mapped_column(String(255), primary_key=True)
    spent: Mapped[float] = mapped_column(Float, default=0.0)             # USDT
    tokens_purchased: Mapped[float] = mapped_column(Float, default=0.0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Slip(Base):
    __tablename__ = "slips"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    buyer_email: Mapped[str] = mapped_column(String(255), index=True)
    wallet_address: Mapped[str] = mapped_column(String(128))
    currency: Mapped[str] = mapped_column(String(16))
    amount_paid: Mapped[float] = mapped_column(Float)        # 결제 통화 기준
    amount_reference: Mapped[float] = mapped_column(Float)   # USDT 환산
    tokens_purchased: Mapped[float] = mapped_column(Float)
    tokens_requested: Mapped[float | None] = mapped_column(Float, nullable=True)
    tx_signature: Mapped[str | None] = mapped_column(String(128), nullable=True)
    redeem_code: Mapped[str] = mapped_column(String(32), unique=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)


class Event(Base):
    __tablename__ = "events"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ts: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)
    level: Mapped[str] = mapped_column(String(16), default="INFO")
    kind: Mapped[str] = mapped_column(String(32), default="system")   # stage, purchase, system
    stage_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    message: Mapped[str] = mapped_column(Text, default="")

from sqlalchemy.orm import Session
from sqlalchemy import select
from presale_api.models import Event
from presale_api.services.telegram import send_telegram

_CHANGE_LEVELS = {"closed_early": "INFO", "extended": "WARN", "shifted": "INFO"}


def add_event(db: Session, level: str, kind: str, message: str,
              stage_number: int | None = None, commit: bool = True):
    e = Event(level=level, kind=kind, message=message, stage_number=stage_number)
    db.add(e)
    if commit:
        db.commit()
    return e


def list_events(db: Session, limit: int = 200, kind: str | None = None):
    q = select(Event).order_by(Event.id.desc()).limit(limit)
    if kind:
        q = q.where(Event.kind == kind)
    rows = db.execute(q).scalars().all()
    return [{
        "id": r.id,
        "ts": r.ts.isoformat(),
        "level": r.level,
        "kind": r.kind,
        "stage_number": r.stage_number,
        "message": r.message,
    } for r in rows][::-1]


def record_stage_changes(db: Session, changes) -> None:
    """동기화 결과를 이벤트로 남긴다 (commit 은 호출자)."""
    for c in changes:
        add_event(db, _CHANGE_LEVELS.get(c.kind, "INFO"), "stage", c.describe(),
                  stage_number=c.stage_number, commit=False)


def notify_stage_changes(changes, sold_out: bool = False) -> None:
    # shifted 는 이벤트에만 남기고 알림은 보내지 않음
    for c in changes:
        if c.kind == "closed_early":
            send_telegram("INFO", c.describe())
        elif c.kind == "extended":
            send_telegram("WARN", c.describe())
    if sold_out and any(c.kind == "closed_early" for c in changes):
        send_telegram("CRITICAL", "Presale sold out: every stage reached its target")

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from presale_api.db import get_db
from presale_api.deps import require_api_key
from presale_api.services.events import list_events

router = APIRouter(dependencies=[Depends(require_api_key)])


@router.get("/events")
def get_events(
    limit: int = Query(default=200, ge=1, le=2000),
    kind: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    return {"items": list_events(db, limit=limit, kind=kind)}

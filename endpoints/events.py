from fastapi import APIRouter, Depends, Query

from utils.dependencies import get_hotel_id
from utils.events import recent_events


router = APIRouter(prefix="/api/events", tags=["Eventos"])


@router.get("/recent")
def recent(
    limit: int = Query(50, ge=1, le=200),
    hotel_id: int = Depends(get_hotel_id),
):
    """Últimos eventos del hotel (cambios de habitación, folios, auditoría), más recientes primero"""
    events = recent_events.recent(hotel_id, limit)
    return {"events": events, "total": len(events)}

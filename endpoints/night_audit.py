"""
Endpoints de la auditoría nocturna (cierre del día operativo) e historial.

Flujo: start -> checklist -> post-room-charges (reanudable) -> complete
"""

from datetime import date, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from config import RATE_LIMIT_AUDIT
from database.conexion import get_db
from models.night_audit import AuditPhase, AuditStatus
from schemas.night_audit import (
    AuditHistoryRead, AuditStatisticsResponse, ChecklistResponse, CompleteAuditRequest,
    NightAuditRead, PostingProgress, PostingRequest, PostingResponse, TrendResponse,
)
from services.audit_history import AuditHistoryService
from services.business_date import BusinessDateService
from services.errors import HotelError
from services.night_audit import NightAuditService
from utils.dependencies import get_hotel_id, get_usuario
from utils.logging_utils import log_error
from utils.rate_limiter import limiter


router = APIRouter(prefix="/api/night-audit", tags=["Auditoría nocturna"])


# ========================================================================
# ESTADO
# ========================================================================

@router.get("/current", response_model=NightAuditRead)
def current_audit(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    """Auditoría de la fecha operativa vigente (idle si aún no se inició)"""
    audit = NightAuditService.get_current(db, hotel_id)
    if audit is None:
        return {
            "business_date": BusinessDateService.current(db, hotel_id),
            "status": AuditStatus.PENDING.value,
            "phase": AuditPhase.IDLE.value,
        }
    return audit


@router.get("/checklist", response_model=ChecklistResponse)
def checklist(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    return NightAuditService.pre_audit_checklist(db, hotel_id)


@router.get("/progress", response_model=PostingProgress)
def progress(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    return NightAuditService.posting_progress(db, hotel_id)


@router.get("/statistics", response_model=AuditStatisticsResponse)
def statistics(
    business_date: Optional[date] = Query(None, description="Default: fecha operativa vigente"),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    business_date = business_date or BusinessDateService.current(db, hotel_id)
    return NightAuditService.compute_statistics(db, hotel_id, business_date).to_dict()


# ========================================================================
# ACCIONES
# ========================================================================

@router.post("/start", response_model=NightAuditRead, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT_AUDIT)
def start_audit(
    request: Request,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        return NightAuditService.start_audit(db, hotel_id, usuario)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("auditoria", usuario, "Error al iniciar auditoría", str(e))
        raise HTTPException(status_code=500, detail="Error interno al iniciar la auditoría")


@router.post("/cancel", response_model=NightAuditRead)
@limiter.limit(RATE_LIMIT_AUDIT)
def cancel_audit(
    request: Request,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return NightAuditService.cancel_audit(db, hotel_id, usuario)


@router.post("/post-room-charges", response_model=PostingResponse)
@limiter.limit(RATE_LIMIT_AUDIT)
def post_room_charges(
    request: Request,
    req: Optional[PostingRequest] = None,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Postea las noches; si se corta, volver a llamar (con el mismo token) continúa sin duplicar cargos"""
    try:
        result = NightAuditService.post_room_charges(
            db, hotel_id, usuario, posting_token=req.posting_token if req else None
        )
        return {
            "audit_id": result.audit_id,
            "business_date": result.business_date,
            "phase": result.phase,
            "posted": result.posted,
            "already_posted": result.already_posted,
            "total": result.total,
            "exceptions": result.exceptions,
            "posting_token": result.posting_token,
        }
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("auditoria", usuario, "Error al postear noches", str(e))
        raise HTTPException(status_code=500, detail="Error interno al postear cargos de habitación")


@router.post("/complete", response_model=NightAuditRead)
@limiter.limit(RATE_LIMIT_AUDIT)
def complete_audit(
    request: Request,
    req: Optional[CompleteAuditRequest] = None,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        return NightAuditService.complete_audit(db, hotel_id, usuario, notes=req.notes if req else None)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("auditoria", usuario, "Error al completar auditoría", str(e))
        raise HTTPException(status_code=500, detail="Error interno al completar la auditoría")


# ========================================================================
# HISTORIAL
# ========================================================================

@router.get("/history", response_model=List[AuditHistoryRead])
def history(
    limit: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    return AuditHistoryService.list_recent(db, hotel_id, limit)


@router.get("/trend", response_model=TrendResponse)
def trend(
    metric: str = Query("occupancy_rate"),
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    """Serie de una métrica del historial (default: últimos 30 días)"""
    date_to = date_to or BusinessDateService.current(db, hotel_id)
    date_from = date_from or date_to - timedelta(days=30)
    return {"metric": metric, "points": AuditHistoryService.trend(db, hotel_id, metric, date_from, date_to)}

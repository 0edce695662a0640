"""
Historial de auditorías nocturnas (sólo inserción) y consultas de tendencia.
"""

from datetime import date
from typing import List

from sqlalchemy.orm import Session

from models.night_audit import NightAudit, NightAuditHistory
from services.errors import ValidationFailed
from utils.timezone import utc_now


TREND_METRICS = (
    "occupancy_rate",
    "adr",
    "revpar",
    "total_revenue",
    "room_revenue",
    "fb_revenue",
    "occupied_rooms",
    "total_payments",
)


class AuditHistoryService:

    @staticmethod
    def record(db: Session, audit: NightAudit, stats, outstanding_count: int) -> NightAuditHistory:
        """Agrega el registro histórico dentro de la transacción de cierre (sin commit)"""
        record = NightAuditHistory(
            hotel_id=audit.hotel_id,
            night_audit_id=audit.id,
            business_date=audit.business_date,
            total_rooms=stats.total_rooms,
            occupied_rooms=stats.occupied_rooms,
            occupancy_rate=stats.occupancy_rate,
            room_revenue=stats.room_revenue,
            fb_revenue=stats.fb_revenue,
            other_revenue=stats.other_revenue,
            total_revenue=stats.total_revenue,
            total_payments=stats.total_payments,
            adr=stats.adr,
            revpar=stats.revpar,
            outstanding_folios=outstanding_count,
            run_by=audit.run_by,
            completed_at=audit.completed_at or utc_now(),
        )
        db.add(record)
        return record

    @staticmethod
    def list_recent(db: Session, hotel_id: int, limit: int = 30) -> List[NightAuditHistory]:
        return (
            db.query(NightAuditHistory)
            .filter(NightAuditHistory.hotel_id == hotel_id)
            .order_by(NightAuditHistory.business_date.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def trend(db: Session, hotel_id: int, metric: str, date_from: date, date_to: date) -> List[dict]:
        if metric not in TREND_METRICS:
            raise ValidationFailed(f"Métrica inválida: {metric}", metric=metric, allowed=list(TREND_METRICS))
        if date_to < date_from:
            raise ValidationFailed("Rango de fechas inválido")
        column = getattr(NightAuditHistory, metric)
        rows = (
            db.query(NightAuditHistory.business_date, column)
            .filter(
                NightAuditHistory.hotel_id == hotel_id,
                NightAuditHistory.business_date >= date_from,
                NightAuditHistory.business_date <= date_to,
            )
            .order_by(NightAuditHistory.business_date)
            .all()
        )
        return [{"business_date": business_date, "value": value} for business_date, value in rows]

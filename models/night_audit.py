from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    ForeignKey,
    Text,
    UniqueConstraint,
    Index,
    Numeric,
    JSON,
    event,
)
from database.conexion import Base
from utils.timezone import utc_now
import enum


class AuditStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class AuditPhase(str, enum.Enum):
    IDLE = "idle"
    REVIEWING = "reviewing"
    CONFIRMING = "confirming"
    POSTING = "posting"
    SETTLING = "settling"
    COMPLETING = "completing"
    COMPLETE = "complete"


class NightAudit(Base):
    """
    Auditoría nocturna de una fecha operativa. Una sola por hotel y fecha.
    La fase y el token de posteo quedan persistidos para poder reanudar
    después de una falla en cualquier punto.
    """
    __tablename__ = "night_audits"
    __table_args__ = (
        UniqueConstraint("hotel_id", "business_date", name="uq_night_audit_hotel_date"),
        Index("idx_night_audit_status", "hotel_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    business_date = Column(Date, nullable=False)

    status = Column(String(20), nullable=False, default=AuditStatus.PENDING.value)
    phase = Column(String(20), nullable=False, default=AuditPhase.IDLE.value)
    version = Column(Integer, nullable=False, default=1)

    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    run_by = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    posting_token = Column(String(64), nullable=True)
    rooms_to_charge = Column(Integer, nullable=False, default=0)
    rooms_charged = Column(Integer, nullable=False, default=0)

    total_room_revenue = Column(Numeric(12, 2), nullable=True)
    total_fb_revenue = Column(Numeric(12, 2), nullable=True)
    total_other_revenue = Column(Numeric(12, 2), nullable=True)
    total_revenue = Column(Numeric(12, 2), nullable=True)
    total_payments = Column(Numeric(12, 2), nullable=True)
    occupied_rooms = Column(Integer, nullable=True)
    occupancy_rate = Column(Numeric(5, 2), nullable=True)
    adr = Column(Numeric(12, 2), nullable=True)
    revpar = Column(Numeric(12, 2), nullable=True)

    # checklist, excepciones de posteo, folios pendientes, conteos de arribos/salidas
    report_data = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)


class NightAuditHistory(Base):
    """
    Registro histórico inmutable de auditorías completadas (sólo inserción).
    """
    __tablename__ = "night_audit_history"
    __table_args__ = (
        UniqueConstraint("hotel_id", "business_date", name="uq_audit_history_hotel_date"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    night_audit_id = Column(Integer, ForeignKey("night_audits.id"), nullable=False, unique=True)
    business_date = Column(Date, nullable=False)

    total_rooms = Column(Integer, nullable=False)
    occupied_rooms = Column(Integer, nullable=False)
    occupancy_rate = Column(Numeric(5, 2), nullable=False)
    room_revenue = Column(Numeric(12, 2), nullable=False)
    fb_revenue = Column(Numeric(12, 2), nullable=False)
    other_revenue = Column(Numeric(12, 2), nullable=False)
    total_revenue = Column(Numeric(12, 2), nullable=False)
    total_payments = Column(Numeric(12, 2), nullable=False)
    adr = Column(Numeric(12, 2), nullable=False)
    revpar = Column(Numeric(12, 2), nullable=False)
    outstanding_folios = Column(Integer, nullable=False, default=0)

    run_by = Column(String(50), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=False)
    recorded_at = Column(DateTime(timezone=True), default=utc_now)


class ImmutableRecordError(Exception):
    pass


@event.listens_for(NightAuditHistory, "before_update")
def _reject_history_update(mapper, connection, target):
    raise ImmutableRecordError("El historial de auditorías no admite modificaciones")


@event.listens_for(NightAuditHistory, "before_delete")
def _reject_history_delete(mapper, connection, target):
    raise ImmutableRecordError("El historial de auditorías no admite eliminaciones")

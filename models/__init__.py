"""
Archivo de inicialización del paquete models.
Expone todas las clases para que SQLAlchemy (Base.metadata) las detecte
al importar 'models'.
"""

from .core import (
    RoomStatus,
    ReservationStatus,
    HousekeepingStatus,
    PosOrderStatus,
    Hotel,
    HotelSettings,
    BusinessDate,
    RoomType,
    Room,
    DailyRate,
    Guest,
    CorporateAccount,
    Reservation,
    ReservationRoom,
    HousekeepingTask,
    PosOrder,
    AuditEvent,
)
from .folio import (
    FolioStatus,
    LineItemCategory,
    PaymentMethod,
    Folio,
    FolioLineItem,
    FolioPayment,
)
from .night_audit import (
    AuditStatus,
    AuditPhase,
    NightAudit,
    NightAuditHistory,
    ImmutableRecordError,
)

__all__ = [
    "RoomStatus", "ReservationStatus", "HousekeepingStatus", "PosOrderStatus",
    "Hotel", "HotelSettings", "BusinessDate",
    "RoomType", "Room", "DailyRate", "Guest", "CorporateAccount",
    "Reservation", "ReservationRoom", "HousekeepingTask", "PosOrder", "AuditEvent",
    "FolioStatus", "LineItemCategory", "PaymentMethod",
    "Folio", "FolioLineItem", "FolioPayment",
    "AuditStatus", "AuditPhase", "NightAudit", "NightAuditHistory", "ImmutableRecordError",
]

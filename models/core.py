from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    ForeignKey,
    Text,
    UniqueConstraint,
    Index,
    Numeric,
    JSON,
)
from sqlalchemy.orm import relationship
from database.conexion import Base
from utils.timezone import utc_now
import enum


# ============================================================================
# ENUMS
# ============================================================================

class RoomStatus(str, enum.Enum):
    VACANT = "vacant"
    OCCUPIED = "occupied"
    DIRTY = "dirty"
    MAINTENANCE = "maintenance"
    OUT_OF_ORDER = "out_of_order"


class ReservationStatus(str, enum.Enum):
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


class HousekeepingStatus(str, enum.Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class PosOrderStatus(str, enum.Enum):
    OPEN = "open"
    POSTED = "posted"
    CANCELLED = "cancelled"


# ============================================================================
# HOTEL (TENANT) Y CONFIGURACIÓN
# ============================================================================

class Hotel(Base):
    """Propiedad (tenant). Todas las entidades operativas cuelgan de un hotel."""
    __tablename__ = "hotels"

    id = Column(Integer, primary_key=True)
    name = Column(String(120), nullable=False)
    code = Column(String(20), nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    settings = relationship("HotelSettings", back_populates="hotel", uselist=False)
    business_date = relationship("BusinessDate", back_populates="hotel", uselist=False)


class HotelSettings(Base):
    __tablename__ = "hotel_settings"

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False, unique=True)
    timezone = Column(String(50), default="America/Argentina/Buenos_Aires", nullable=False)
    # Porcentajes aplicados a cargos de habitación / consumos
    tax_rate = Column(Numeric(5, 2), default=0, nullable=False)
    service_charge_rate = Column(Numeric(5, 2), default=0, nullable=False)
    # Políticas: en False la advertencia pasa a ser un bloqueo
    allow_checkout_with_balance = Column(Boolean, default=True, nullable=False)
    allow_audit_with_outstanding_folios = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    hotel = relationship("Hotel", back_populates="settings")


class BusinessDate(Base):
    """
    Fecha operativa del hotel (singleton por hotel).
    Sólo avanza como efecto final de una auditoría nocturna completada,
    mediante compare-and-swap sobre (current_date, version).
    """
    __tablename__ = "business_dates"

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False, unique=True)
    current_date = Column(Date, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    hotel = relationship("Hotel", back_populates="business_date")


# ============================================================================
# HABITACIONES Y TARIFAS
# ============================================================================

class RoomType(Base):
    __tablename__ = "room_types"
    __table_args__ = (
        UniqueConstraint("hotel_id", "name", name="uq_room_type_hotel_name"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(60), nullable=False)
    base_rate = Column(Numeric(12, 2), nullable=True)
    capacity = Column(Integer, nullable=False, default=2)
    is_active = Column(Boolean, default=True, nullable=False)


class Room(Base):
    __tablename__ = "rooms"
    __table_args__ = (
        UniqueConstraint("hotel_id", "room_number", name="uq_room_hotel_number"),
        Index("idx_room_status", "hotel_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    room_number = Column(String(10), nullable=False)
    floor = Column(Integer, nullable=True)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)

    # vacant | occupied | dirty | maintenance | out_of_order
    status = Column(String(20), nullable=False, default=RoomStatus.VACANT.value)

    # Ocupante actual: sólo con status == occupied
    current_guest_id = Column(Integer, ForeignKey("guests.id", ondelete="SET NULL"), nullable=True)
    current_reservation_room_id = Column(
        Integer, ForeignKey("reservation_rooms.id", ondelete="SET NULL", use_alter=True), nullable=True
    )

    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    room_type = relationship("RoomType")
    current_guest = relationship("Guest")


class DailyRate(Base):
    """Tarifa por día y tipo de habitación (temporadas, feriados)."""
    __tablename__ = "daily_rates"
    __table_args__ = (
        UniqueConstraint("hotel_id", "room_type_id", "rate_date", name="uq_daily_rate_day"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    rate_date = Column(Date, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)

    room_type = relationship("RoomType")


# ============================================================================
# HUÉSPEDES Y CUENTAS CORPORATIVAS
# ============================================================================

class Guest(Base):
    __tablename__ = "guests"

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    first_name = Column(String(60), nullable=False)
    last_name = Column(String(60), nullable=False)
    email = Column(String(120), nullable=True)
    phone = Column(String(40), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


class CorporateAccount(Base):
    __tablename__ = "corporate_accounts"

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(120), nullable=False)
    contact_email = Column(String(120), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


# ============================================================================
# RESERVAS
# ============================================================================

class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        Index("idx_res_dates", "check_in_date", "check_out_date"),
        Index("idx_res_status", "hotel_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    confirmation_number = Column(String(30), nullable=False, unique=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=False)
    corporate_account_id = Column(Integer, ForeignKey("corporate_accounts.id"), nullable=True)

    # confirmed | checked_in | checked_out | cancelled | no_show
    status = Column(String(20), nullable=False, default=ReservationStatus.CONFIRMED.value)

    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    notes = Column(Text, nullable=True)

    actual_check_in = Column(DateTime(timezone=True), nullable=True)
    actual_check_out = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    guest = relationship("Guest")
    corporate_account = relationship("CorporateAccount")
    rooms = relationship(
        "ReservationRoom",
        back_populates="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationRoom.id",
    )


class ReservationRoom(Base):
    """
    Segmento de la reserva: un tipo de habitación para un rango de fechas.
    room_id queda en NULL hasta la asignación (a más tardar en el check-in).
    """
    __tablename__ = "reservation_rooms"
    __table_args__ = (
        Index("idx_resroom_room", "room_id"),
    )

    id = Column(Integer, primary_key=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False)
    room_type_id = Column(Integer, ForeignKey("room_types.id"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    rate_per_night = Column(Numeric(12, 2), nullable=True)

    reservation = relationship("Reservation", back_populates="rooms")
    room_type = relationship("RoomType")
    room = relationship("Room", foreign_keys=[room_id])


# ============================================================================
# HOUSEKEEPING / POS / AUDITORÍA DE ACCIONES
# ============================================================================

class HousekeepingTask(Base):
    __tablename__ = "housekeeping_tasks"
    __table_args__ = (
        Index("idx_hk_task_status_date", "hotel_id", "status", "task_date"),
        # Una sola tarea por habitación, día y tipo
        UniqueConstraint("room_id", "task_date", "task_type", name="uq_hk_task_daily"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id", ondelete="RESTRICT"), nullable=False)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="SET NULL"), nullable=True)

    task_date = Column(Date, nullable=False)
    task_type = Column(String(30), nullable=False)  # checkout | daily | inspection
    status = Column(String(20), nullable=False, default=HousekeepingStatus.PENDING.value)
    priority = Column(String(20), nullable=False, default="media")  # baja | media | alta | urgente
    notes = Column(Text, nullable=True)

    done_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)

    room = relationship("Room")
    reservation = relationship("Reservation")


class PosOrder(Base):
    """Consumo de punto de venta (restaurante, bar) pendiente de cargar a un folio."""
    __tablename__ = "pos_orders"
    __table_args__ = (
        Index("idx_pos_status", "hotel_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    folio_id = Column(Integer, ForeignKey("folios.id"), nullable=False)
    outlet = Column(String(40), nullable=False, default="restaurant")
    description = Column(String(200), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String(20), nullable=False, default=PosOrderStatus.OPEN.value)
    line_item_id = Column(Integer, ForeignKey("folio_line_items.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utc_now)


class AuditEvent(Base):
    __tablename__ = "audit_events"
    __table_args__ = (
        Index("idx_audit_entity", "entity_type", "entity_id"),
        Index("idx_audit_time", "timestamp"),
        Index("idx_audit_action", "action"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)

    # "reservation" | "room" | "folio" | "night_audit"
    entity_type = Column(String(30), nullable=False)
    entity_id = Column(Integer, nullable=False)

    action = Column(String(50), nullable=False)  # CHECKIN, CHECKOUT, ROOM_MOVE, PAYMENT, ...
    usuario = Column(String(50), nullable=True)

    timestamp = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    descripcion = Column(Text, nullable=True)
    payload = Column(JSON, nullable=True)

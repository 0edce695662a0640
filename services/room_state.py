"""
Estado operativo de habitaciones.

Tabla de transiciones exhaustiva; 'occupied' sólo se alcanza con un ocupante
resoluble (huésped + segmento de reserva) y mediante UPDATE condicional, de
modo que dos check-ins concurrentes sobre la misma habitación no pueden
ganar ambos.
"""

from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from models.core import Room, RoomStatus, RoomType, DailyRate
from services.audit_trail import record_action
from services.errors import InvalidTransition, NotFound, RoomUnavailable, ValidationFailed
from utils.events import DomainEvent, RoomStatusChanged, event_bus
from utils.logging_utils import log_event, log_warning
from utils.timezone import utc_now
from utils.transactions import run_in_transaction


ALLOWED_TRANSITIONS: Dict[RoomStatus, Set[RoomStatus]] = {
    RoomStatus.VACANT: {RoomStatus.DIRTY, RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER, RoomStatus.OCCUPIED},
    RoomStatus.DIRTY: {RoomStatus.VACANT, RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER, RoomStatus.OCCUPIED},
    RoomStatus.OCCUPIED: {RoomStatus.DIRTY, RoomStatus.MAINTENANCE, RoomStatus.OUT_OF_ORDER},
    RoomStatus.MAINTENANCE: {RoomStatus.VACANT, RoomStatus.DIRTY, RoomStatus.OUT_OF_ORDER},
    RoomStatus.OUT_OF_ORDER: {RoomStatus.VACANT, RoomStatus.DIRTY, RoomStatus.MAINTENANCE},
}

# Estados desde los que se puede ocupar una habitación
OCCUPIABLE = (RoomStatus.VACANT.value, RoomStatus.DIRTY.value)


def parse_room_status(value) -> RoomStatus:
    try:
        return RoomStatus(value)
    except ValueError:
        raise ValidationFailed(f"Estado de habitación inválido: {value}", status=value)


class RoomStateService:

    @staticmethod
    def can_transition(current: RoomStatus, target: RoomStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[RoomStatus(current)]

    @staticmethod
    def get_room(db: Session, hotel_id: int, room_id: int) -> Room:
        room = db.query(Room).filter(Room.id == room_id, Room.hotel_id == hotel_id).first()
        if not room:
            raise NotFound(f"Habitación {room_id} no encontrada", room_id=room_id)
        return room

    @staticmethod
    def list_rooms(db: Session, hotel_id: int, status: Optional[str] = None) -> List[Room]:
        query = db.query(Room).filter(Room.hotel_id == hotel_id, Room.is_active.is_(True))
        if status:
            query = query.filter(Room.status == parse_room_status(status).value)
        return query.order_by(Room.room_number).all()

    # ========================================================================
    # OPERACIONES SIN COMMIT (se componen dentro de otras transacciones)
    # ========================================================================

    @staticmethod
    def occupy(
        db: Session,
        hotel_id: int,
        room_id: int,
        guest_id: int,
        reservation_room_id: int,
        usuario: str,
    ) -> List[DomainEvent]:
        """
        vacant|dirty -> occupied en un solo UPDATE condicional.

        Raises:
            RoomUnavailable: la habitación no está libre (o la ganó otra operación)
        """
        room = RoomStateService.get_room(db, hotel_id, room_id)
        old_status = room.status
        rows = (
            db.query(Room)
            .filter(
                Room.id == room_id,
                Room.hotel_id == hotel_id,
                Room.is_active.is_(True),
                Room.status.in_(OCCUPIABLE),
            )
            .update(
                {
                    Room.status: RoomStatus.OCCUPIED.value,
                    Room.current_guest_id: guest_id,
                    Room.current_reservation_room_id: reservation_room_id,
                    Room.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        db.refresh(room)
        if rows == 0:
            raise RoomUnavailable(
                f"Habitación {room.room_number} no disponible (estado: {room.status})",
                room_id=room.id,
                room_number=room.room_number,
                status=room.status,
            )
        record_action(db, hotel_id, "room", room.id, "ROOM_OCCUPY", usuario,
                      f"Habitación {room.room_number} ocupada", {"reservation_room_id": reservation_room_id})
        return [RoomStatusChanged(hotel_id=hotel_id, room_id=room.id, room_number=room.room_number,
                                  old_status=old_status, new_status=RoomStatus.OCCUPIED.value)]

    @staticmethod
    def release(
        db: Session,
        hotel_id: int,
        room_id: int,
        reservation_room_id: int,
        usuario: str,
    ) -> List[DomainEvent]:
        """
        occupied -> dirty, sólo si la ocupa el segmento indicado. Limpia el ocupante.
        Si la habitación ya no está ocupada por ese segmento no hace nada.
        """
        room = RoomStateService.get_room(db, hotel_id, room_id)
        rows = (
            db.query(Room)
            .filter(
                Room.id == room_id,
                Room.status == RoomStatus.OCCUPIED.value,
                Room.current_reservation_room_id == reservation_room_id,
            )
            .update(
                {
                    Room.status: RoomStatus.DIRTY.value,
                    Room.current_guest_id: None,
                    Room.current_reservation_room_id: None,
                    Room.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        db.refresh(room)
        if rows == 0:
            log_warning("habitaciones", usuario, "Liberar habitación sin ocupación del segmento",
                        f"room={room.room_number} status={room.status} segmento={reservation_room_id}")
            return []
        record_action(db, hotel_id, "room", room.id, "ROOM_RELEASE", usuario,
                      f"Habitación {room.room_number} liberada (sucia)", {"reservation_room_id": reservation_room_id})
        return [RoomStatusChanged(hotel_id=hotel_id, room_id=room.id, room_number=room.room_number,
                                  old_status=RoomStatus.OCCUPIED.value, new_status=RoomStatus.DIRTY.value)]

    @staticmethod
    def apply_status(
        db: Session,
        hotel_id: int,
        room_id: int,
        new_status,
        usuario: str,
        guest_id: Optional[int] = None,
        reservation_room_id: Optional[int] = None,
    ) -> Tuple[Room, List[DomainEvent]]:
        target = parse_room_status(new_status)
        room = RoomStateService.get_room(db, hotel_id, room_id)
        current = RoomStatus(room.status)

        if current == target:
            return room, []

        if target == RoomStatus.OCCUPIED:
            if guest_id is None or reservation_room_id is None:
                raise InvalidTransition(
                    "Para ocupar una habitación se requiere huésped y segmento de reserva",
                    current=current.value, target=target.value,
                )
            events = RoomStateService.occupy(db, hotel_id, room_id, guest_id, reservation_room_id, usuario)
            return room, events

        if not RoomStateService.can_transition(current, target):
            raise InvalidTransition(
                f"Habitación {room.room_number}: transición {current.value} -> {target.value} no permitida",
                current=current.value, target=target.value,
            )

        rows = (
            db.query(Room)
            .filter(Room.id == room_id, Room.status == current.value)
            .update(
                {
                    Room.status: target.value,
                    Room.current_guest_id: None,
                    Room.current_reservation_room_id: None,
                    Room.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        db.refresh(room)
        if rows == 0:
            raise InvalidTransition(
                f"Habitación {room.room_number} cambió de estado durante la operación",
                current=room.status, target=target.value,
            )

        record_action(db, hotel_id, "room", room.id, "ROOM_STATUS", usuario,
                      f"Habitación {room.room_number}: {current.value} -> {target.value}")
        return room, [RoomStatusChanged(hotel_id=hotel_id, room_id=room.id, room_number=room.room_number,
                                        old_status=current.value, new_status=target.value)]

    # ========================================================================
    # OPERACIONES PÚBLICAS (con commit y publicación de eventos)
    # ========================================================================

    @staticmethod
    def set_status(
        db: Session,
        hotel_id: int,
        room_id: int,
        new_status,
        usuario: str = "sistema",
        guest_id: Optional[int] = None,
        reservation_room_id: Optional[int] = None,
    ) -> Room:
        room, events = run_in_transaction(
            db,
            lambda: RoomStateService.apply_status(
                db, hotel_id, room_id, new_status, usuario, guest_id, reservation_room_id
            ),
            area="habitaciones",
        )
        event_bus.publish_all(events)
        if events:
            log_event("habitaciones", usuario, "Cambio de estado", f"room={room.room_number} -> {room.status}")
        return room

    @staticmethod
    def compute_stats(db: Session, hotel_id: int) -> dict:
        rows = (
            db.query(Room.status, func.count(Room.id))
            .filter(Room.hotel_id == hotel_id, Room.is_active.is_(True))
            .group_by(Room.status)
            .all()
        )
        counts = {status.value: 0 for status in RoomStatus}
        for status, count in rows:
            counts[status] = count
        total = sum(counts.values())
        occupied = counts[RoomStatus.OCCUPIED.value]
        occupancy_rate = round(occupied / total * 100, 2) if total else 0.0
        return {"total": total, "by_status": counts, "occupancy_rate": occupancy_rate}

    # ========================================================================
    # INVENTARIO
    # ========================================================================

    @staticmethod
    def create_room_type(db: Session, hotel_id: int, name: str, base_rate: Optional[Decimal] = None,
                         capacity: int = 2) -> RoomType:
        def work():
            room_type = RoomType(hotel_id=hotel_id, name=name, base_rate=base_rate, capacity=capacity)
            db.add(room_type)
            return room_type

        return run_in_transaction(db, work, area="habitaciones")

    @staticmethod
    def create_room(db: Session, hotel_id: int, room_number: str, room_type_id: int,
                    floor: Optional[int] = None, usuario: str = "sistema") -> Room:
        room_type = db.query(RoomType).filter(RoomType.id == room_type_id, RoomType.hotel_id == hotel_id).first()
        if not room_type:
            raise NotFound(f"Tipo de habitación {room_type_id} no encontrado", room_type_id=room_type_id)

        def work():
            room = Room(hotel_id=hotel_id, room_number=room_number, room_type_id=room_type_id,
                        floor=floor, status=RoomStatus.VACANT.value)
            db.add(room)
            return room

        room = run_in_transaction(db, work, area="habitaciones")
        log_event("habitaciones", usuario, "Alta habitación", f"room={room_number}")
        return room

    @staticmethod
    def set_daily_rate(db: Session, hotel_id: int, room_type_id: int, rate_date, price: Decimal) -> DailyRate:
        def work():
            rate = db.query(DailyRate).filter(
                DailyRate.hotel_id == hotel_id,
                DailyRate.room_type_id == room_type_id,
                DailyRate.rate_date == rate_date,
            ).first()
            if rate:
                rate.price = price
            else:
                rate = DailyRate(hotel_id=hotel_id, room_type_id=room_type_id, rate_date=rate_date, price=price)
                db.add(rate)
            return rate

        return run_in_transaction(db, work, area="tarifas")

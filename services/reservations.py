"""
Ciclo de vida de reservas:
confirmed -> checked_in -> checked_out
confirmed -> cancelled | no_show

Check-in es todo o nada: validación completa antes de escribir y una sola
transacción para ocupar habitaciones, cambiar estado y abrir el folio.
"""

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Set

from sqlalchemy.orm import Session

from models.core import (
    Guest, Reservation, ReservationRoom, ReservationStatus, Room,
)
from models.folio import FolioStatus
from services.audit_trail import record_action
from services.business_date import BusinessDateService
from services.errors import (
    AlreadyCheckedIn, IncompleteAssignment, InvalidTransition, NotFound,
    OutstandingBalance, RoomUnavailable, ValidationFailed,
)
from services.folio_ledger import FolioService, folio_snapshot
from services.hotels import HotelService
from services.rates import RateResolver
from services.room_state import RoomStateService
from utils.events import event_bus
from utils.housekeeping_engine import generate_checkout_tasks
from utils.logging_utils import log_event, log_warning
from utils.timezone import utc_now
from utils.transactions import run_in_transaction


RESERVATION_TRANSITIONS: Dict[ReservationStatus, Set[ReservationStatus]] = {
    ReservationStatus.CONFIRMED: {ReservationStatus.CHECKED_IN, ReservationStatus.CANCELLED, ReservationStatus.NO_SHOW},
    ReservationStatus.CHECKED_IN: {ReservationStatus.CHECKED_OUT},
    ReservationStatus.CHECKED_OUT: set(),
    ReservationStatus.CANCELLED: set(),
    ReservationStatus.NO_SHOW: set(),
}


@dataclass
class CheckoutResult:
    reservation_id: int
    confirmation_number: str
    folio: dict
    folio_closed: bool
    released_room_ids: List[int] = field(default_factory=list)
    housekeeping_task_ids: List[int] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ReservationService:

    @staticmethod
    def generate_confirmation_number() -> str:
        return f"RES-{uuid.uuid4().hex[:10].upper()}"

    @staticmethod
    def get_reservation(db: Session, hotel_id: int, reservation_id: int) -> Reservation:
        reservation = db.query(Reservation).filter(
            Reservation.id == reservation_id, Reservation.hotel_id == hotel_id
        ).first()
        if not reservation:
            raise NotFound(f"Reserva {reservation_id} no encontrada", reservation_id=reservation_id)
        return reservation

    @staticmethod
    def _ensure_transition(reservation: Reservation, target: ReservationStatus) -> None:
        current = ReservationStatus(reservation.status)
        if target in RESERVATION_TRANSITIONS[current]:
            return
        if target == ReservationStatus.CANCELLED and current in (
            ReservationStatus.CHECKED_IN, ReservationStatus.CHECKED_OUT
        ):
            raise AlreadyCheckedIn(
                f"Reserva {reservation.confirmation_number} ya registró check-in",
                current=current.value, target=target.value,
            )
        raise InvalidTransition(
            f"Reserva {reservation.confirmation_number}: {current.value} -> {target.value} no permitido",
            current=current.value, target=target.value,
        )

    @staticmethod
    def _set_status(db: Session, reservation: Reservation, expected: ReservationStatus,
                    target: ReservationStatus, **values) -> None:
        """UPDATE condicional sobre el estado esperado (dos operaciones no pueden ganar a la vez)"""
        values["status"] = target.value
        values["updated_at"] = utc_now()
        rows = (
            db.query(Reservation)
            .filter(Reservation.id == reservation.id, Reservation.status == expected.value)
            .update(values, synchronize_session=False)
        )
        db.refresh(reservation)
        if rows == 0:
            raise InvalidTransition(
                f"Reserva {reservation.confirmation_number} cambió de estado durante la operación",
                current=reservation.status, target=target.value,
            )

    # ========================================================================
    # ALTA Y ASIGNACIÓN
    # ========================================================================

    @staticmethod
    def create_reservation(
        db: Session,
        hotel_id: int,
        guest_id: int,
        check_in_date: date,
        check_out_date: date,
        segments: List[dict],
        usuario: str = "sistema",
        total_amount: Optional[Decimal] = None,
        corporate_account_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Reservation:
        """
        segments: [{room_type_id, room_id?, start_date?, end_date?, rate_per_night?}]
        Si no se informa total_amount se calcula con las tarifas vigentes.
        """
        if check_out_date <= check_in_date:
            raise ValidationFailed("La fecha de salida debe ser posterior a la de llegada")
        if not segments:
            raise ValidationFailed("La reserva necesita al menos un segmento de habitación")
        guest = db.query(Guest).filter(Guest.id == guest_id, Guest.hotel_id == hotel_id).first()
        if not guest:
            raise NotFound(f"Huésped {guest_id} no encontrado", guest_id=guest_id)

        def work():
            reservation = Reservation(
                hotel_id=hotel_id,
                confirmation_number=ReservationService.generate_confirmation_number(),
                guest_id=guest_id,
                corporate_account_id=corporate_account_id,
                status=ReservationStatus.CONFIRMED.value,
                check_in_date=check_in_date,
                check_out_date=check_out_date,
                notes=notes,
            )
            for data in segments:
                start = data.get("start_date") or check_in_date
                end = data.get("end_date") or check_out_date
                if end <= start:
                    raise ValidationFailed("Segmento con rango de fechas inválido")
                room_id = data.get("room_id")
                if room_id is not None:
                    RoomStateService.get_room(db, hotel_id, room_id)
                reservation.rooms.append(ReservationRoom(
                    room_type_id=data["room_type_id"],
                    room_id=room_id,
                    start_date=start,
                    end_date=end,
                    rate_per_night=data.get("rate_per_night"),
                ))
            db.add(reservation)
            db.flush()
            if total_amount is not None:
                reservation.total_amount = total_amount
            else:
                reservation.total_amount = sum(
                    (RateResolver.segment_total(db, hotel_id, seg) for seg in reservation.rooms), Decimal("0")
                )
            record_action(db, hotel_id, "reservation", reservation.id, "CREATE", usuario,
                          f"Reserva {reservation.confirmation_number} creada")
            return reservation

        reservation = run_in_transaction(db, work, area="reservas")
        log_event("reservas", usuario, "Crear reserva", f"id={reservation.id} conf={reservation.confirmation_number}")
        return reservation

    @staticmethod
    def _apply_assignments(db: Session, hotel_id: int, reservation: Reservation,
                           assignments: Optional[List[dict]]) -> Dict[int, int]:
        """
        Combina asignaciones nuevas con las ya existentes y valida.
        Returns: {reservation_room_id: room_id}
        """
        by_segment = {seg.id: seg for seg in reservation.rooms}
        mapping = {seg.id: seg.room_id for seg in reservation.rooms}
        for assignment in assignments or []:
            segment_id = assignment["reservation_room_id"]
            if segment_id not in by_segment:
                raise ValidationFailed(
                    f"El segmento {segment_id} no pertenece a la reserva {reservation.confirmation_number}",
                    reservation_room_id=segment_id,
                )
            RoomStateService.get_room(db, hotel_id, assignment["room_id"])
            mapping[segment_id] = assignment["room_id"]
        return mapping

    @staticmethod
    def assign_rooms(db: Session, hotel_id: int, reservation_id: int, assignments: List[dict],
                     usuario: str = "sistema") -> Reservation:
        """Pre-asignación de habitaciones a una reserva confirmada (sin ocupar)"""
        def work():
            reservation = ReservationService.get_reservation(db, hotel_id, reservation_id)
            if reservation.status != ReservationStatus.CONFIRMED.value:
                raise InvalidTransition(
                    f"Reserva {reservation.confirmation_number} no admite reasignación",
                    current=reservation.status, target="assign_rooms",
                )
            mapping = ReservationService._apply_assignments(db, hotel_id, reservation, assignments)
            for segment in reservation.rooms:
                segment.room_id = mapping[segment.id]
            record_action(db, hotel_id, "reservation", reservation.id, "ASSIGN_ROOMS", usuario,
                          "Asignación de habitaciones", {"assignments": assignments})
            return reservation

        reservation = run_in_transaction(db, work, area="reservas")
        log_event("reservas", usuario, "Asignar habitaciones", f"id={reservation_id}")
        return reservation

    # ========================================================================
    # CHECK-IN / CHECK-OUT
    # ========================================================================

    @staticmethod
    def check_in(db: Session, hotel_id: int, reservation_id: int, assignments: Optional[List[dict]] = None,
                 usuario: str = "sistema") -> Reservation:
        """
        Raises:
            IncompleteAssignment: algún segmento sigue sin habitación
            RoomUnavailable: alguna habitación no se puede ocupar (nada queda ocupado)
        """
        reservation = ReservationService.get_reservation(db, hotel_id, reservation_id)
        ReservationService._ensure_transition(reservation, ReservationStatus.CHECKED_IN)

        # Validación completa antes de cualquier escritura
        mapping = ReservationService._apply_assignments(db, hotel_id, reservation, assignments)
        missing = [segment_id for segment_id, room_id in mapping.items() if room_id is None]
        if missing:
            raise IncompleteAssignment(
                f"Reserva {reservation.confirmation_number}: segmentos sin habitación asignada",
                reservation_room_ids=missing,
            )
        # Se ocupan los segmentos vigentes en la fecha operativa; si ninguno lo está, los primeros
        business_date = BusinessDateService.current(db, hotel_id)
        arriving = [seg for seg in reservation.rooms if seg.start_date <= business_date < seg.end_date]
        if not arriving:
            first_start = min(seg.start_date for seg in reservation.rooms)
            arriving = [seg for seg in reservation.rooms if seg.start_date == first_start]
        arriving_ids = {seg.id for seg in arriving}
        room_ids = [mapping[seg.id] for seg in arriving]
        if len(set(room_ids)) != len(room_ids):
            raise RoomUnavailable("La misma habitación está asignada a más de un segmento", room_ids=room_ids)

        def work():
            res = ReservationService.get_reservation(db, hotel_id, reservation_id)
            events = []
            for segment in res.rooms:
                segment.room_id = mapping[segment.id]
            db.flush()
            for segment in res.rooms:
                if segment.id in arriving_ids:
                    events += RoomStateService.occupy(db, hotel_id, segment.room_id, res.guest_id, segment.id, usuario)
            ReservationService._set_status(
                db, res, ReservationStatus.CONFIRMED, ReservationStatus.CHECKED_IN,
                actual_check_in=utc_now(),
            )
            folio = FolioService.get_or_create_for_reservation(db, res, usuario)
            record_action(db, hotel_id, "reservation", res.id, "CHECKIN", usuario,
                          f"Check-in reserva {res.confirmation_number}",
                          {"rooms": room_ids, "folio_id": folio.id})
            return res, events

        reservation, events = run_in_transaction(db, work, area="reservas")
        event_bus.publish_all(events)
        log_event("reservas", usuario, "Check-in", f"id={reservation.id} rooms={room_ids}")
        return reservation

    @staticmethod
    def check_out(db: Session, hotel_id: int, reservation_id: int, usuario: str = "sistema") -> CheckoutResult:
        reservation = ReservationService.get_reservation(db, hotel_id, reservation_id)
        ReservationService._ensure_transition(reservation, ReservationStatus.CHECKED_OUT)

        settings = HotelService.get_settings(db, hotel_id)
        folio = FolioService.get_for_reservation(db, reservation.id)
        balance = folio.calculate_balance() if folio else Decimal("0.00")
        if balance > 0 and not settings.allow_checkout_with_balance:
            raise OutstandingBalance(
                f"Reserva {reservation.confirmation_number} con saldo pendiente {balance}",
                balance=str(balance),
            )

        def work():
            res = ReservationService.get_reservation(db, hotel_id, reservation_id)
            business_date = BusinessDateService.current(db, hotel_id)
            events = []
            released = []
            occupying = db.query(Room).filter(
                Room.hotel_id == hotel_id,
                Room.current_reservation_room_id.in_([seg.id for seg in res.rooms]),
            ).all()
            for room in occupying:
                room_events = RoomStateService.release(db, hotel_id, room.id, room.current_reservation_room_id, usuario)
                if room_events:
                    released.append(room.id)
                events += room_events
            tasks = generate_checkout_tasks(db, res, released, business_date)

            ReservationService._set_status(
                db, res, ReservationStatus.CHECKED_IN, ReservationStatus.CHECKED_OUT,
                actual_check_out=utc_now(),
            )

            res_folio = FolioService.get_or_create_for_reservation(db, res, usuario)
            folio_balance = res_folio.calculate_balance()
            folio_closed = False
            if folio_balance == 0 and res_folio.is_open():
                res_folio.status = FolioStatus.CLOSED.value
                res_folio.closed_at = utc_now()
                res_folio.closed_by = usuario
                folio_closed = True
            record_action(db, hotel_id, "reservation", res.id, "CHECKOUT", usuario,
                          f"Check-out reserva {res.confirmation_number}",
                          {"balance": str(folio_balance), "rooms": released})
            return res, res_folio, folio_closed, released, tasks, events

        res, res_folio, folio_closed, released, tasks, events = run_in_transaction(db, work, area="reservas")

        warnings = []
        final_balance = res_folio.calculate_balance()
        if final_balance > 0:
            warnings.append(f"Saldo pendiente {final_balance}: el folio queda abierto")
            log_warning("reservas", usuario, "Check-out con saldo", f"id={res.id} saldo={final_balance}")
        elif final_balance < 0:
            warnings.append(f"Saldo a favor del huésped {-final_balance}: el folio queda abierto")

        event_bus.publish_all(events)
        log_event("reservas", usuario, "Check-out", f"id={res.id} saldo={final_balance}")
        return CheckoutResult(
            reservation_id=res.id,
            confirmation_number=res.confirmation_number,
            folio=folio_snapshot(res_folio),
            folio_closed=folio_closed,
            released_room_ids=released,
            housekeeping_task_ids=[task.id for task in tasks],
            warnings=warnings,
        )

    @staticmethod
    def move_to_room(db: Session, hotel_id: int, reservation_room_id: int, new_room_id: int,
                     usuario: str = "sistema", reason: Optional[str] = None) -> ReservationRoom:
        """
        Cambio de habitación durante la estadía: la nueva queda ocupada y la
        anterior sucia en la misma transacción.
        """
        def work():
            segment = db.query(ReservationRoom).join(Reservation).filter(
                ReservationRoom.id == reservation_room_id, Reservation.hotel_id == hotel_id
            ).first()
            if not segment:
                raise NotFound(f"Segmento {reservation_room_id} no encontrado", reservation_room_id=reservation_room_id)
            res = segment.reservation
            if res.status != ReservationStatus.CHECKED_IN.value:
                raise InvalidTransition(
                    f"Reserva {res.confirmation_number} no está en casa",
                    current=res.status, target="move_to_room",
                )
            if segment.room_id == new_room_id:
                raise ValidationFailed("La habitación destino es la actual")

            old_room_id = segment.room_id
            events = RoomStateService.occupy(db, hotel_id, new_room_id, res.guest_id, segment.id, usuario)
            if old_room_id is not None:
                events += RoomStateService.release(db, hotel_id, old_room_id, segment.id, usuario)
            segment.room_id = new_room_id
            record_action(db, hotel_id, "reservation", res.id, "ROOM_MOVE", usuario,
                          f"Segmento {segment.id}: habitación {old_room_id} -> {new_room_id}",
                          {"reason": reason})
            return segment, old_room_id, events

        segment, old_room_id, events = run_in_transaction(db, work, area="reservas")
        event_bus.publish_all(events)
        log_event("reservas", usuario, "Cambio de habitación", f"segmento={segment.id} {old_room_id} -> {new_room_id}")
        return segment

    @staticmethod
    def roll_segments(db: Session, hotel_id: int, business_date: date, usuario: str = "sistema") -> List[dict]:
        """
        Estadías en casa con varios segmentos: cuando empieza un segmento en
        otra habitación se libera la del segmento terminado (queda sucia, con
        tarea de limpieza) y se ocupa la nueva. Una transacción por reserva.

        Returns:
            Excepciones [{room_id, room_number, reason}] de las reservas que no
            pudieron pasar al segmento nuevo (quedan como estaban).
        """
        reservations = db.query(Reservation).filter(
            Reservation.hotel_id == hotel_id,
            Reservation.status == ReservationStatus.CHECKED_IN.value,
        ).order_by(Reservation.id).all()

        plans = []
        for res in reservations:
            segments = {seg.id: seg for seg in res.rooms}
            occupying = db.query(Room).filter(
                Room.hotel_id == hotel_id,
                Room.current_reservation_room_id.in_(list(segments)),
            ).all()
            active = {room.current_reservation_room_id for room in occupying}
            starting = [
                (seg.id, seg.room_id) for seg in res.rooms
                if seg.start_date <= business_date < seg.end_date and seg.room_id is not None and seg.id not in active
            ]
            if not starting:
                continue
            ending = [
                (room.id, room.current_reservation_room_id) for room in occupying
                if segments[room.current_reservation_room_id].end_date <= business_date
            ]
            plans.append((res.id, res.guest_id, starting, ending))

        exceptions = []
        for reservation_id, guest_id, starting, ending in plans:
            new_room_ids = {room_id for _, room_id in starting}

            def work():
                res = ReservationService.get_reservation(db, hotel_id, reservation_id)
                events, released = [], []
                for room_id, segment_id in ending:
                    room_events = RoomStateService.release(db, hotel_id, room_id, segment_id, usuario)
                    if room_events and room_id not in new_room_ids:
                        released.append(room_id)
                    events += room_events
                for segment_id, room_id in starting:
                    events += RoomStateService.occupy(db, hotel_id, room_id, guest_id, segment_id, usuario)
                generate_checkout_tasks(db, res, released, business_date)
                record_action(db, hotel_id, "reservation", res.id, "SEGMENT_ROLL", usuario,
                              f"Reserva {res.confirmation_number}: cambio de segmento",
                              {"released": [r for r, _ in ending], "occupied": sorted(new_room_ids)})
                return events

            try:
                events = run_in_transaction(db, work, area="reservas")
            except RoomUnavailable as exc:
                log_warning("reservas", usuario, "Cambio de segmento no aplicado",
                            f"reserva={reservation_id}: {exc.message}")
                exceptions.append({
                    "room_id": exc.context.get("room_id"),
                    "room_number": exc.context.get("room_number"),
                    "reason": exc.message,
                })
                continue
            event_bus.publish_all(events)
            log_event("reservas", usuario, "Cambio de segmento",
                      f"reserva={reservation_id} libera={[r for r, _ in ending]} ocupa={sorted(new_room_ids)}")
        return exceptions

    # ========================================================================
    # CANCELACIÓN Y NO-SHOW
    # ========================================================================

    @staticmethod
    def cancel(db: Session, hotel_id: int, reservation_id: int, usuario: str = "sistema",
               reason: Optional[str] = None) -> Reservation:
        def work():
            res = ReservationService.get_reservation(db, hotel_id, reservation_id)
            ReservationService._ensure_transition(res, ReservationStatus.CANCELLED)
            ReservationService._set_status(
                db, res, ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED,
                cancelled_at=utc_now(), cancel_reason=reason,
            )
            record_action(db, hotel_id, "reservation", res.id, "CANCEL", usuario,
                          f"Reserva {res.confirmation_number} cancelada", {"reason": reason})
            return res

        reservation = run_in_transaction(db, work, area="reservas")
        log_event("reservas", usuario, "Cancelar reserva", f"id={reservation_id}")
        return reservation

    @staticmethod
    def no_show_candidates(db: Session, hotel_id: int, as_of: Optional[date] = None) -> List[Reservation]:
        """Reservas confirmadas cuya fecha de llegada ya llegó o pasó sin check-in"""
        as_of = as_of or BusinessDateService.current(db, hotel_id)
        return db.query(Reservation).filter(
            Reservation.hotel_id == hotel_id,
            Reservation.status == ReservationStatus.CONFIRMED.value,
            Reservation.check_in_date <= as_of,
        ).order_by(Reservation.check_in_date, Reservation.id).all()

    @staticmethod
    def mark_no_show(db: Session, hotel_id: int, reservation_id: int, usuario: str = "sistema") -> Reservation:
        def work():
            res = ReservationService.get_reservation(db, hotel_id, reservation_id)
            ReservationService._ensure_transition(res, ReservationStatus.NO_SHOW)
            business_date = BusinessDateService.current(db, hotel_id)
            if res.check_in_date > business_date:
                raise InvalidTransition(
                    f"Reserva {res.confirmation_number}: la fecha de llegada aún no llegó",
                    current=res.status, target=ReservationStatus.NO_SHOW.value,
                )
            ReservationService._set_status(db, res, ReservationStatus.CONFIRMED, ReservationStatus.NO_SHOW)
            record_action(db, hotel_id, "reservation", res.id, "NO_SHOW", usuario,
                          f"Reserva {res.confirmation_number} marcada no-show")
            return res

        reservation = run_in_transaction(db, work, area="reservas")
        log_event("reservas", usuario, "Marcar no-show", f"id={reservation_id}")
        return reservation

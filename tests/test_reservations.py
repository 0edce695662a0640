"""
Tests del ciclo de vida de reservas: check-in atómico, check-out,
cambio de habitación, cancelación y no-show
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from models.core import HousekeepingTask, ReservationStatus, Room, RoomStatus
from models.folio import FolioStatus
from services.errors import (
    AlreadyCheckedIn, IncompleteAssignment, InvalidTransition, OutstandingBalance, RoomUnavailable,
)
from services.folio_ledger import FolioService
from services.hotels import HotelService
from services.housekeeping import HousekeepingService
from services.reservations import ReservationService
from services.room_state import RoomStateService
from conftest import BASE_RATE, BUSINESS_DATE, make_reservation, make_stay


class TestCreateReservation:

    def test_total_calculado_con_tarifa_base(self, db_session, hotel):
        reservation = make_reservation(db_session, hotel, nights=3)
        assert reservation.status == ReservationStatus.CONFIRMED.value
        assert reservation.total_amount == BASE_RATE * 3
        assert reservation.confirmation_number.startswith("RES-")

    def test_tarifa_diaria_tiene_prioridad(self, db_session, hotel):
        RoomStateService.set_daily_rate(
            db_session, hotel["hotel"].id, hotel["room_type"].id, BUSINESS_DATE, Decimal("8000")
        )
        reservation = make_reservation(db_session, hotel, nights=2)
        assert reservation.total_amount == Decimal("13000.00")


class TestCheckIn:

    def test_check_in_ocupa_y_abre_folio(self, db_session, hotel):
        room = hotel["rooms"][0]
        reservation = make_stay(db_session, hotel, room)

        assert reservation.status == ReservationStatus.CHECKED_IN.value
        assert reservation.actual_check_in is not None
        db_session.refresh(room)
        assert room.status == RoomStatus.OCCUPIED.value
        assert room.current_reservation_room_id == reservation.rooms[0].id
        folio = FolioService.get_for_reservation(db_session, reservation.id)
        assert folio is not None and folio.is_open()

    def test_check_in_sin_asignacion(self, db_session, hotel):
        reservation = make_reservation(db_session, hotel)
        with pytest.raises(IncompleteAssignment):
            ReservationService.check_in(db_session, hotel["hotel"].id, reservation.id, usuario="test")
        db_session.refresh(reservation)
        assert reservation.status == ReservationStatus.CONFIRMED.value

    def test_check_in_todo_o_nada(self, db_session, hotel):
        """Si una de las habitaciones no está disponible no se ocupa ninguna"""
        hotel_id = hotel["hotel"].id
        free_room, blocked_room = hotel["rooms"][0], hotel["rooms"][1]
        RoomStateService.set_status(db_session, hotel_id, blocked_room.id, "maintenance", "test")

        reservation = ReservationService.create_reservation(
            db_session, hotel_id, hotel["guest"].id, BUSINESS_DATE, BUSINESS_DATE + timedelta(days=2),
            [{"room_type_id": hotel["room_type"].id}, {"room_type_id": hotel["room_type"].id}],
            usuario="test",
        )
        assignments = [
            {"reservation_room_id": reservation.rooms[0].id, "room_id": free_room.id},
            {"reservation_room_id": reservation.rooms[1].id, "room_id": blocked_room.id},
        ]
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(db_session, hotel_id, reservation.id, assignments, "test")

        db_session.refresh(free_room)
        db_session.refresh(reservation)
        assert free_room.status == RoomStatus.VACANT.value
        assert free_room.current_reservation_room_id is None
        assert reservation.status == ReservationStatus.CONFIRMED.value
        assert FolioService.get_for_reservation(db_session, reservation.id) is None

    def test_misma_habitacion_en_dos_segmentos(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        room = hotel["rooms"][0]
        reservation = ReservationService.create_reservation(
            db_session, hotel_id, hotel["guest"].id, BUSINESS_DATE, BUSINESS_DATE + timedelta(days=1),
            [{"room_type_id": hotel["room_type"].id}, {"room_type_id": hotel["room_type"].id}],
            usuario="test",
        )
        assignments = [{"reservation_room_id": seg.id, "room_id": room.id} for seg in reservation.rooms]
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(db_session, hotel_id, reservation.id, assignments, "test")

    def test_habitacion_ya_ocupada(self, db_session, hotel):
        room = hotel["rooms"][0]
        make_stay(db_session, hotel, room)
        other = make_reservation(db_session, hotel, room=room)
        with pytest.raises(RoomUnavailable):
            ReservationService.check_in(db_session, hotel["hotel"].id, other.id, usuario="test")

    def test_check_in_ocupa_el_segmento_vigente(self, db_session, hotel):
        """Llegada tardía a una estadía partida: sólo se ocupa la habitación del segmento de hoy"""
        hotel_id = hotel["hotel"].id
        past_room, today_room = hotel["rooms"][0], hotel["rooms"][1]
        yesterday = BUSINESS_DATE - timedelta(days=1)
        reservation = ReservationService.create_reservation(
            db_session, hotel_id, hotel["guest"].id, yesterday, BUSINESS_DATE + timedelta(days=1),
            [
                {"room_type_id": hotel["room_type"].id, "room_id": past_room.id,
                 "start_date": yesterday, "end_date": BUSINESS_DATE},
                {"room_type_id": hotel["room_type"].id, "room_id": today_room.id,
                 "start_date": BUSINESS_DATE, "end_date": BUSINESS_DATE + timedelta(days=1)},
            ],
            usuario="test",
        )
        today_segment = next(seg.id for seg in reservation.rooms if seg.start_date == BUSINESS_DATE)

        ReservationService.check_in(db_session, hotel_id, reservation.id, usuario="test")

        db_session.refresh(past_room)
        db_session.refresh(today_room)
        assert past_room.status == RoomStatus.VACANT.value
        assert today_room.status == RoomStatus.OCCUPIED.value
        assert today_room.current_reservation_room_id == today_segment

    def test_check_in_dos_veces(self, db_session, hotel):
        reservation = make_stay(db_session, hotel, hotel["rooms"][0])
        with pytest.raises(InvalidTransition):
            ReservationService.check_in(db_session, hotel["hotel"].id, reservation.id, usuario="test")


class TestCheckOut:

    def test_check_out_saldo_cero_cierra_folio(self, db_session, hotel):
        room = hotel["rooms"][0]
        reservation = make_stay(db_session, hotel, room)

        result = ReservationService.check_out(db_session, hotel["hotel"].id, reservation.id, "test")

        assert result.folio_closed is True
        assert result.warnings == []
        assert result.released_room_ids == [room.id]
        db_session.refresh(room)
        assert room.status == RoomStatus.DIRTY.value
        assert room.current_guest_id is None
        task = db_session.query(HousekeepingTask).filter(HousekeepingTask.room_id == room.id).one()
        assert task.task_type == "checkout"
        assert task.id in result.housekeeping_task_ids

    def test_check_out_con_saldo_deja_folio_abierto(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        reservation = make_stay(db_session, hotel, hotel["rooms"][0])
        folio = FolioService.get_for_reservation(db_session, reservation.id)
        FolioService.add_line_item(db_session, hotel_id, folio.id, "food_beverage", Decimal("1500"), "test")

        result = ReservationService.check_out(db_session, hotel_id, reservation.id, "test")

        assert result.folio_closed is False
        assert result.folio["balance"] == Decimal("1500.00")
        assert len(result.warnings) == 1
        db_session.refresh(folio)
        assert folio.status == FolioStatus.OPEN.value

    def test_politica_bloquea_check_out_con_saldo(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        HotelService.update_settings(db_session, hotel_id, "test", allow_checkout_with_balance=False)
        reservation = make_stay(db_session, hotel, hotel["rooms"][0])
        folio = FolioService.get_for_reservation(db_session, reservation.id)
        FolioService.add_line_item(db_session, hotel_id, folio.id, "other", Decimal("100"), "test")

        with pytest.raises(OutstandingBalance):
            ReservationService.check_out(db_session, hotel_id, reservation.id, "test")
        db_session.refresh(reservation)
        assert reservation.status == ReservationStatus.CHECKED_IN.value

    def test_completar_limpieza_libera_habitacion(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        room = hotel["rooms"][0]
        reservation = make_stay(db_session, hotel, room)
        result = ReservationService.check_out(db_session, hotel_id, reservation.id, "test")

        HousekeepingService.complete_task(db_session, hotel_id, result.housekeeping_task_ids[0], "mucama")
        db_session.refresh(room)
        assert room.status == RoomStatus.VACANT.value


class TestRoomMove:

    def test_cambio_de_habitacion(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        old_room, new_room = hotel["rooms"][0], hotel["rooms"][1]
        reservation = make_stay(db_session, hotel, old_room)
        segment_id = reservation.rooms[0].id

        segment = ReservationService.move_to_room(db_session, hotel_id, segment_id, new_room.id, "test", "Ruido")

        assert segment.room_id == new_room.id
        db_session.refresh(old_room)
        db_session.refresh(new_room)
        assert old_room.status == RoomStatus.DIRTY.value
        assert new_room.status == RoomStatus.OCCUPIED.value
        assert new_room.current_reservation_room_id == segment_id

    def test_cambio_a_habitacion_ocupada(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        first = make_stay(db_session, hotel, hotel["rooms"][0])
        make_stay(db_session, hotel, hotel["rooms"][1])

        with pytest.raises(RoomUnavailable):
            ReservationService.move_to_room(db_session, hotel_id, first.rooms[0].id, hotel["rooms"][1].id, "test")
        room = db_session.query(Room).filter(Room.id == hotel["rooms"][0].id).one()
        assert room.current_reservation_room_id == first.rooms[0].id


class TestCancelAndNoShow:

    def test_cancelar_confirmada(self, db_session, hotel):
        reservation = make_reservation(db_session, hotel)
        cancelled = ReservationService.cancel(db_session, hotel["hotel"].id, reservation.id, "test", "Cambio de planes")
        assert cancelled.status == ReservationStatus.CANCELLED.value
        assert cancelled.cancel_reason == "Cambio de planes"

    def test_cancelar_en_casa_falla(self, db_session, hotel):
        reservation = make_stay(db_session, hotel, hotel["rooms"][0])
        with pytest.raises(AlreadyCheckedIn):
            ReservationService.cancel(db_session, hotel["hotel"].id, reservation.id, "test")
        db_session.refresh(reservation)
        assert reservation.status == ReservationStatus.CHECKED_IN.value

    def test_no_show_candidatos_y_marca(self, db_session, hotel):
        hotel_id = hotel["hotel"].id
        due = make_reservation(db_session, hotel)
        future = make_reservation(db_session, hotel, start=BUSINESS_DATE + timedelta(days=5))

        candidates = ReservationService.no_show_candidates(db_session, hotel_id)
        assert [r.id for r in candidates] == [due.id]

        marked = ReservationService.mark_no_show(db_session, hotel_id, due.id, "test")
        assert marked.status == ReservationStatus.NO_SHOW.value

        with pytest.raises(InvalidTransition):
            ReservationService.mark_no_show(db_session, hotel_id, future.id, "test")

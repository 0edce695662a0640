"""
Tests del bus de eventos en proceso
"""

from datetime import date
from decimal import Decimal

import pytest

from services.room_state import RoomStateService
from utils.events import (
    BusinessDateAdvanced, EventBus, FolioUpdated, RecentEventsBuffer, RoomStatusChanged, event_bus, recent_events,
)


@pytest.fixture
def bus():
    return EventBus()


def test_suscriptor_que_falla_no_corta_al_resto(bus):
    received = []

    def broken(event):
        raise RuntimeError("caído")

    bus.subscribe("RoomStatusChanged", broken, name="broken")
    bus.subscribe("RoomStatusChanged", received.append, name="collector")

    result = bus.publish(RoomStatusChanged(hotel_id=1, room_id=5, old_status="vacant", new_status="dirty"))

    assert result["notified"] == 1
    assert result["failed"] == 1
    assert result["failures"][0]["handler"] == "broken"
    assert len(received) == 1


def test_comodin_recibe_todos(bus):
    received = []
    bus.subscribe("*", received.append)

    bus.publish(BusinessDateAdvanced(hotel_id=1, old_date=date(2025, 3, 10), new_date=date(2025, 3, 11)))
    bus.publish(FolioUpdated(hotel_id=1, folio_id=3, reason="payment"))

    assert [e.event_type for e in received] == ["BusinessDateAdvanced", "FolioUpdated"]


def test_suscripcion_duplicada_y_baja(bus):
    received = []
    bus.subscribe("FolioUpdated", received.append)
    bus.subscribe("FolioUpdated", received.append)

    bus.publish(FolioUpdated(hotel_id=1))
    assert len(received) == 1

    bus.unsubscribe("FolioUpdated", received.append)
    bus.publish(FolioUpdated(hotel_id=1))
    assert len(received) == 1


def test_handler_no_callable(bus):
    with pytest.raises(TypeError):
        bus.subscribe("FolioUpdated", "no-soy-funcion")


def test_to_dict_serializa_fechas_y_montos():
    data = FolioUpdated(hotel_id=2, folio_id=9, balance=Decimal("150.50")).to_dict()
    assert data["event_type"] == "FolioUpdated"
    assert data["balance"] == "150.50"
    assert isinstance(data["occurred_at"], str)


def test_buffer_filtra_por_hotel():
    buffer = RecentEventsBuffer(maxlen=3)
    for room_id in range(4):
        buffer(RoomStatusChanged(hotel_id=1, room_id=room_id))
    buffer(RoomStatusChanged(hotel_id=2, room_id=99))

    events = buffer.recent(1)
    assert [e["room_id"] for e in events] == [3, 2]
    assert buffer.recent(2)[0]["room_id"] == 99


def test_servicio_publica_despues_del_commit(db_session, hotel):
    hotel_id = hotel["hotel"].id
    room = hotel["rooms"][0]
    received = []
    event_bus.subscribe("RoomStatusChanged", received.append)
    try:
        RoomStateService.set_status(db_session, hotel_id, room.id, "dirty", "test")
    finally:
        event_bus.unsubscribe("RoomStatusChanged", received.append)

    assert received[0].new_status == "dirty"
    assert recent_events.recent(hotel_id)[0]["event_type"] == "RoomStatusChanged"

"""
Fixtures comunes: base SQLite en memoria por test, hotel de 10 habitaciones
(tarifa base 5000) y cliente HTTP con get_db sobreescrito.
"""

import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ.setdefault("LOG_FILE", os.path.join(tempfile.gettempdir(), "hotel_core_tests.log"))

from datetime import date, timedelta
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from database.conexion import Base, get_db
from services.hotels import HotelService
from services.reservations import ReservationService
from services.room_state import RoomStateService
from utils.events import recent_events


BUSINESS_DATE = date(2025, 3, 10)
BASE_RATE = Decimal("5000.00")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(autouse=True)
def clear_recent_events():
    recent_events.clear()
    yield
    recent_events.clear()


@pytest.fixture
def hotel(db_session):
    """Hotel con 10 habitaciones Standard (101..110) y un huésped"""
    hotel = HotelService.create_hotel(
        db_session, name="Hotel Test", code="TST", usuario="test",
        business_date=BUSINESS_DATE, tax_rate=Decimal("0"), service_charge_rate=Decimal("0"),
    )
    room_type = RoomStateService.create_room_type(db_session, hotel.id, "Standard", BASE_RATE, 2)
    rooms = [
        RoomStateService.create_room(db_session, hotel.id, str(100 + n), room_type.id, floor=1)
        for n in range(1, 11)
    ]
    guest = HotelService.create_guest(db_session, hotel.id, "Ana", "García")
    return {"hotel": hotel, "room_type": room_type, "rooms": rooms, "guest": guest}


def make_reservation(db, ctx, nights=2, start=None, room=None, **kwargs):
    start = start or BUSINESS_DATE
    segment = {"room_type_id": ctx["room_type"].id}
    if room is not None:
        segment["room_id"] = room.id
    return ReservationService.create_reservation(
        db, ctx["hotel"].id, ctx["guest"].id, start, start + timedelta(days=nights), [segment],
        usuario="test", **kwargs
    )


def make_stay(db, ctx, room, nights=2):
    """Reserva confirmada + check-in en la habitación indicada"""
    reservation = make_reservation(db, ctx, nights=nights, room=room)
    return ReservationService.check_in(db, ctx["hotel"].id, reservation.id, usuario="test")


@pytest.fixture
def client(engine, hotel):
    from main import app

    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = Session()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()

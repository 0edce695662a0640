"""
Tests del historial de auditorías: inmutabilidad y tendencias
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from models.night_audit import AuditPhase, AuditStatus, ImmutableRecordError, NightAudit, NightAuditHistory
from services.audit_history import AuditHistoryService
from services.errors import ValidationFailed
from services.night_audit import AuditStatistics
from utils.timezone import utc_now
from conftest import BUSINESS_DATE


def _history(db, hotel_id, business_date, occupied, adr):
    audit = NightAudit(
        hotel_id=hotel_id,
        business_date=business_date,
        status=AuditStatus.COMPLETED.value,
        phase=AuditPhase.COMPLETE.value,
        run_by="auditor",
        completed_at=utc_now(),
    )
    db.add(audit)
    db.flush()
    stats = AuditStatistics(
        business_date=business_date,
        total_rooms=10,
        occupied_rooms=occupied,
        occupancy_rate=Decimal(occupied * 10),
        room_revenue=adr * occupied,
        adr=adr,
        revpar=adr * occupied / 10,
    )
    record = AuditHistoryService.record(db, audit, stats, 0)
    db.commit()
    return record


@pytest.fixture
def history(db_session, hotel):
    hotel_id = hotel["hotel"].id
    return [
        _history(db_session, hotel_id, BUSINESS_DATE + timedelta(days=offset), occupied, Decimal(adr))
        for offset, occupied, adr in [(0, 6, "5000.00"), (1, 8, "5200.00"), (2, 5, "4800.00")]
    ]


class TestImmutability:

    def test_no_admite_modificaciones(self, db_session, history):
        record = history[0]
        record.occupancy_rate = Decimal("99.00")
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()

        stored = db_session.query(NightAuditHistory).filter(NightAuditHistory.id == record.id).one()
        assert stored.occupancy_rate == Decimal("60.00")

    def test_no_admite_eliminaciones(self, db_session, history):
        db_session.delete(history[0])
        with pytest.raises(ImmutableRecordError):
            db_session.flush()
        db_session.rollback()
        assert db_session.query(NightAuditHistory).count() == 3


class TestTrend:

    def test_tendencia_de_ocupacion(self, db_session, hotel, history):
        points = AuditHistoryService.trend(
            db_session, hotel["hotel"].id, "occupancy_rate", BUSINESS_DATE, BUSINESS_DATE + timedelta(days=2)
        )
        assert [p["value"] for p in points] == [Decimal("60.00"), Decimal("80.00"), Decimal("50.00")]
        assert points[0]["business_date"] == BUSINESS_DATE

    def test_rango_parcial(self, db_session, hotel, history):
        points = AuditHistoryService.trend(
            db_session, hotel["hotel"].id, "adr", BUSINESS_DATE + timedelta(days=1), BUSINESS_DATE + timedelta(days=5)
        )
        assert [p["value"] for p in points] == [Decimal("5200.00"), Decimal("4800.00")]

    def test_metrica_invalida(self, db_session, hotel, history):
        with pytest.raises(ValidationFailed):
            AuditHistoryService.trend(db_session, hotel["hotel"].id, "id", BUSINESS_DATE, BUSINESS_DATE)

    def test_rango_invertido(self, db_session, hotel):
        with pytest.raises(ValidationFailed):
            AuditHistoryService.trend(
                db_session, hotel["hotel"].id, "adr", BUSINESS_DATE, BUSINESS_DATE - timedelta(days=1)
            )

    def test_lista_reciente_ordenada(self, db_session, hotel, history):
        recent = AuditHistoryService.list_recent(db_session, hotel["hotel"].id, limit=2)
        assert [r.business_date for r in recent] == [
            BUSINESS_DATE + timedelta(days=2), BUSINESS_DATE + timedelta(days=1),
        ]

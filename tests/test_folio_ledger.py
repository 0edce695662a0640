"""
Tests del libro de folios: saldo derivado, anulaciones, pagos, cierre,
transferencias y consumos POS
"""

from decimal import Decimal

import pytest

from models.folio import FolioLineItem, FolioStatus
from services.errors import InvalidTransition, ValidationFailed
from services.folio_ledger import FolioService, folio_snapshot
from services.hotels import HotelService
from services.reservations import ReservationService
from conftest import make_stay


@pytest.fixture
def stay_folio(db_session, hotel):
    reservation = make_stay(db_session, hotel, hotel["rooms"][0])
    return FolioService.get_for_reservation(db_session, reservation.id)


@pytest.fixture
def corporate_folio(db_session, hotel):
    account = HotelService.create_corporate_account(db_session, hotel["hotel"].id, "ACME SA")
    return FolioService.open_folio(db_session, hotel["hotel"].id, "test", corporate_account_id=account.id)


class TestBalance:

    def test_saldo_es_cargos_menos_pagos(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "food_beverage", Decimal("1200"), "test")
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("300"), "test", quantity=2)
        FolioService.record_payment(db_session, hotel_id, stay_folio.id, Decimal("1000"), "cash", "test")

        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("800.00")

    def test_impuesto_y_servicio(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        HotelService.update_settings(
            db_session, hotel_id, "test", tax_rate=Decimal("21"), service_charge_rate=Decimal("10")
        )
        item = FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "room", Decimal("1000"), "test")

        assert item.tax_amount == Decimal("210.00")
        assert item.service_charge_amount == Decimal("100.00")
        snapshot = folio_snapshot(FolioService.get_folio(db_session, hotel_id, stay_folio.id))
        assert snapshot["total_amount"] == Decimal("1310.00")

    def test_categoria_invalida(self, db_session, hotel, stay_folio):
        with pytest.raises(ValidationFailed):
            FolioService.add_line_item(db_session, hotel["hotel"].id, stay_folio.id, "minibar", Decimal("10"), "test")


class TestVoids:

    def test_anular_cargo_baja_saldo(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        item = FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("500"), "test")
        FolioService.void_line_item(db_session, hotel_id, item.id, "Cargo duplicado", "test")

        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("0.00")
        assert db_session.query(FolioLineItem).filter(FolioLineItem.id == item.id).one().voided

    def test_anular_pago_sube_saldo_exacto(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("1000"), "test")
        payment, _ = FolioService.record_payment(db_session, hotel_id, stay_folio.id, Decimal("400"), "credit_card", "test")
        before = FolioService.balance(db_session, hotel_id, stay_folio.id)

        FolioService.void_payment(db_session, hotel_id, payment.id, "Contracargo", "test")

        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == before + Decimal("400.00")

    def test_anular_pago_en_folio_cerrado(self, db_session, hotel, stay_folio):
        """El folio cerrado por el check-out queda cerrado y con el saldo del pago anulado"""
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("1000"), "test")
        payment, _ = FolioService.record_payment(db_session, hotel_id, stay_folio.id, Decimal("1000"), "cash", "test")
        result = ReservationService.check_out(db_session, hotel_id, stay_folio.reservation_id, "test")
        assert result.folio_closed

        voided = FolioService.void_payment(db_session, hotel_id, payment.id, "Contracargo", "test")

        assert voided.voided
        folio = FolioService.get_folio(db_session, hotel_id, stay_folio.id)
        assert folio.status == FolioStatus.CLOSED.value
        assert folio.calculate_balance() == Decimal("1000.00")

    def test_anular_pago_dos_veces(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        payment, _ = FolioService.record_payment(db_session, hotel_id, stay_folio.id, Decimal("50"), "cash", "test")
        FolioService.void_payment(db_session, hotel_id, payment.id, "error", "test")
        with pytest.raises(InvalidTransition):
            FolioService.void_payment(db_session, hotel_id, payment.id, "error", "test")


class TestPayments:

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-10")])
    def test_monto_no_positivo(self, db_session, hotel, stay_folio, amount):
        with pytest.raises(ValidationFailed):
            FolioService.record_payment(db_session, hotel["hotel"].id, stay_folio.id, amount, "cash", "test")

    def test_metodo_invalido(self, db_session, hotel, stay_folio):
        with pytest.raises(ValidationFailed):
            FolioService.record_payment(db_session, hotel["hotel"].id, stay_folio.id, Decimal("10"), "cheque", "test")

    def test_sobrepago_es_advertencia(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("100"), "test")
        payment, warnings = FolioService.record_payment(db_session, hotel_id, stay_folio.id, Decimal("150"), "cash", "test")

        assert payment.id is not None
        assert len(warnings) == 1
        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("-50.00")


class TestClose:

    def test_no_cierra_estadia_en_curso(self, db_session, hotel, stay_folio):
        with pytest.raises(InvalidTransition):
            FolioService.close_folio(db_session, hotel["hotel"].id, stay_folio.id, "test")

    def test_folio_cerrado_rechaza_cargos_y_pagos(self, db_session, hotel, corporate_folio):
        hotel_id = hotel["hotel"].id
        FolioService.close_folio(db_session, hotel_id, corporate_folio.id, "test")

        with pytest.raises(InvalidTransition):
            FolioService.add_line_item(db_session, hotel_id, corporate_folio.id, "other", Decimal("10"), "test")
        with pytest.raises(InvalidTransition):
            FolioService.record_payment(db_session, hotel_id, corporate_folio.id, Decimal("10"), "cash", "test")

    def test_cierre_con_saldo_requiere_ajuste(self, db_session, hotel, corporate_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, corporate_folio.id, "other", Decimal("75"), "test")

        with pytest.raises(InvalidTransition):
            FolioService.close_folio(db_session, hotel_id, corporate_folio.id, "test")

        folio = FolioService.close_folio(db_session, hotel_id, corporate_folio.id, "test", write_off=True, reason="Cortesía")
        assert folio.status == FolioStatus.CLOSED.value
        assert folio.calculate_balance() == Decimal("0.00")

    def test_reabrir(self, db_session, hotel, corporate_folio):
        hotel_id = hotel["hotel"].id
        FolioService.close_folio(db_session, hotel_id, corporate_folio.id, "test")
        folio = FolioService.reopen_folio(db_session, hotel_id, corporate_folio.id, "test", "Cargo tardío")
        assert folio.is_open()

    def test_folio_requiere_un_titular(self, db_session, hotel):
        with pytest.raises(ValidationFailed):
            FolioService.open_folio(db_session, hotel["hotel"].id, "test")


class TestTransfer:

    def test_transferir_a_cuenta_corporativa(self, db_session, hotel, stay_folio, corporate_folio):
        hotel_id = hotel["hotel"].id
        item = FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "food_beverage", Decimal("900"), "test")

        copy = FolioService.transfer_line_item(db_session, hotel_id, item.id, corporate_folio.id, "test")

        assert copy.folio_id == corporate_folio.id
        assert copy.transferred_from_folio_id == stay_folio.id
        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("0.00")
        assert FolioService.balance(db_session, hotel_id, corporate_folio.id) == Decimal("900.00")


class TestAdjustments:

    def test_ajuste_negativo_sin_impuesto(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        HotelService.update_settings(db_session, hotel_id, "test", tax_rate=Decimal("21"))
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("1000"), "test")

        item = FolioService.add_adjustment(db_session, hotel_id, stay_folio.id, Decimal("-200"), "Cortesía", "test")

        assert item.category == "other"
        assert item.amount == Decimal("-200.00")
        assert item.tax_amount == Decimal("0.00")
        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("1010.00")

    def test_descuento_siempre_resta(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("500"), "test")

        item = FolioService.add_adjustment(
            db_session, hotel_id, stay_folio.id, Decimal("150"), "Cliente frecuente", "test", is_discount=True
        )

        assert item.amount == Decimal("-150.00")
        assert item.description == "Descuento: Cliente frecuente"
        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("350.00")

    def test_ajuste_en_cero_o_sin_motivo(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        with pytest.raises(ValidationFailed):
            FolioService.add_adjustment(db_session, hotel_id, stay_folio.id, Decimal("0"), "nada", "test")
        with pytest.raises(ValidationFailed):
            FolioService.add_adjustment(db_session, hotel_id, stay_folio.id, Decimal("10"), " ", "test")

    def test_folio_cerrado_no_admite_ajustes(self, db_session, hotel, corporate_folio):
        hotel_id = hotel["hotel"].id
        FolioService.close_folio(db_session, hotel_id, corporate_folio.id, "test")
        with pytest.raises(InvalidTransition):
            FolioService.add_adjustment(db_session, hotel_id, corporate_folio.id, Decimal("-10"), "error", "test")


class TestSplit:

    def test_dividir_mueve_los_cargos(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        dinner = FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "food_beverage", Decimal("1200"), "test")
        extra = FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("300"), "test")

        target = FolioService.split_folio(db_session, hotel_id, stay_folio.id, [extra.id], "test")

        assert target.id != stay_folio.id
        assert target.is_open()
        assert target.guest_id == hotel["guest"].id
        assert target.reservation_id is None
        assert [item.id for item in target.line_items] == [extra.id]
        assert target.line_items[0].transferred_from_folio_id == stay_folio.id
        assert FolioService.balance(db_session, hotel_id, target.id) == Decimal("300.00")
        source = FolioService.get_folio(db_session, hotel_id, stay_folio.id)
        assert [item.id for item in source.line_items] == [dinner.id]
        assert source.calculate_balance() == Decimal("1200.00")

    def test_cargo_de_otro_folio(self, db_session, hotel, stay_folio, corporate_folio):
        hotel_id = hotel["hotel"].id
        foreign = FolioService.add_line_item(db_session, hotel_id, corporate_folio.id, "other", Decimal("50"), "test")
        with pytest.raises(ValidationFailed):
            FolioService.split_folio(db_session, hotel_id, stay_folio.id, [foreign.id], "test")

    def test_no_divide_cargos_anulados(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        item = FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("50"), "test")
        FolioService.void_line_item(db_session, hotel_id, item.id, "error", "test")
        with pytest.raises(InvalidTransition):
            FolioService.split_folio(db_session, hotel_id, stay_folio.id, [item.id], "test")

    def test_lista_vacia(self, db_session, hotel, stay_folio):
        with pytest.raises(ValidationFailed):
            FolioService.split_folio(db_session, hotel["hotel"].id, stay_folio.id, [], "test")


class TestBulkPayment:

    @pytest.fixture
    def two_folios(self, db_session, hotel, corporate_folio):
        hotel_id = hotel["hotel"].id
        second = FolioService.open_folio(
            db_session, hotel_id, "test", corporate_account_id=corporate_folio.corporate_account_id
        )
        FolioService.add_line_item(db_session, hotel_id, corporate_folio.id, "other", Decimal("500"), "test")
        FolioService.add_line_item(db_session, hotel_id, second.id, "other", Decimal("300"), "test")
        return corporate_folio, second

    def test_reparte_en_orden_hasta_agotar(self, db_session, hotel, stay_folio, two_folios):
        hotel_id = hotel["hotel"].id
        first, second = two_folios

        payments, warnings = FolioService.bulk_payment(
            db_session, hotel_id, [stay_folio.id, first.id, second.id], Decimal("600"), "bank_transfer", "test",
            reference="TRF-1",
        )

        assert [(p.folio_id, p.amount) for p in payments] == [(first.id, Decimal("500.00")), (second.id, Decimal("100.00"))]
        assert all(p.reference == "TRF-1" for p in payments)
        assert warnings == []
        assert FolioService.balance(db_session, hotel_id, first.id) == Decimal("0.00")
        assert FolioService.balance(db_session, hotel_id, second.id) == Decimal("200.00")
        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("0.00")

    def test_sobrante_es_advertencia(self, db_session, hotel, two_folios):
        hotel_id = hotel["hotel"].id
        first, second = two_folios

        payments, warnings = FolioService.bulk_payment(
            db_session, hotel_id, [first.id, second.id], Decimal("1000"), "cash", "test"
        )

        assert sum((p.amount for p in payments), Decimal("0")) == Decimal("800.00")
        assert len(warnings) == 1

    def test_sin_saldo_pendiente(self, db_session, hotel, stay_folio):
        with pytest.raises(ValidationFailed):
            FolioService.bulk_payment(db_session, hotel["hotel"].id, [stay_folio.id], Decimal("100"), "cash", "test")


class TestPos:

    def test_cargar_consumo_es_idempotente(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        order = FolioService.create_pos_order(db_session, hotel_id, stay_folio.id, "Cena", Decimal("2500"))

        first = FolioService.post_pos_order(db_session, hotel_id, order.id, "test")
        second = FolioService.post_pos_order(db_session, hotel_id, order.id, "test")

        assert first.id == second.id
        assert first.posting_key == f"pos:{order.id}"
        assert FolioService.balance(db_session, hotel_id, stay_folio.id) == Decimal("2500.00")

    def test_folios_pendientes(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("40"), "test")

        outstanding = FolioService.outstanding_folios(db_session, hotel_id)

        assert [f["folio_id"] for f in outstanding] == [stay_folio.id]
        assert outstanding[0]["room_number"] == "101"
        assert outstanding[0]["holder"] == "Ana García"

    def test_check_out_y_cierre_manual(self, db_session, hotel, stay_folio):
        hotel_id = hotel["hotel"].id
        FolioService.add_line_item(db_session, hotel_id, stay_folio.id, "other", Decimal("40"), "test")
        ReservationService.check_out(db_session, hotel_id, stay_folio.reservation_id, "test")
        FolioService.record_payment(db_session, hotel_id, stay_folio.id, Decimal("40"), "cash", "test")

        folio = FolioService.close_folio(db_session, hotel_id, stay_folio.id, "test")
        assert folio.status == FolioStatus.CLOSED.value

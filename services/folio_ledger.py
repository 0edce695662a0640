"""
Libro de folios: cargos, pagos, anulaciones y cierre.

- El saldo se calcula siempre a partir de ítems y pagos no anulados.
- Nada se borra: los errores se corrigen anulando (voided).
- Las escrituras sobre un folio toman lock de la fila del folio
  (SELECT ... FOR UPDATE) para serializar front desk, POS y auditoría.
"""

import uuid
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from models.core import (
    HotelSettings, Reservation, ReservationStatus, Room, PosOrder, PosOrderStatus,
)
from models.folio import (
    Folio, FolioLineItem, FolioPayment, FolioStatus, LineItemCategory, PaymentMethod,
)
from services.audit_trail import record_action
from services.business_date import BusinessDateService
from services.errors import InvalidTransition, NotFound, ValidationFailed
from utils.events import FolioUpdated, event_bus
from utils.logging_utils import log_event, log_warning
from utils.timezone import utc_now
from utils.transactions import run_in_transaction


CENT = Decimal("0.01")

# Categorías de ingreso sobre las que se calculan impuesto y cargo por servicio
TAXABLE_CATEGORIES = (
    LineItemCategory.ROOM.value,
    LineItemCategory.FOOD_BEVERAGE.value,
    LineItemCategory.OTHER.value,
)


def quantize(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def parse_category(value) -> LineItemCategory:
    try:
        return LineItemCategory(value)
    except ValueError:
        raise ValidationFailed(f"Categoría de cargo inválida: {value}", category=value)


def parse_method(value) -> PaymentMethod:
    try:
        return PaymentMethod(value)
    except ValueError:
        raise ValidationFailed(f"Método de pago inválido: {value}", method=value)


def folio_snapshot(folio: Folio) -> dict:
    """Totales derivados del folio (nunca persistidos)"""
    return {
        "folio_id": folio.id,
        "folio_number": folio.folio_number,
        "status": folio.status,
        "subtotal": folio.calculate_subtotal(),
        "tax_amount": folio.calculate_tax(),
        "service_charge": folio.calculate_service_charge(),
        "total_amount": folio.calculate_total(),
        "paid_amount": folio.calculate_paid(),
        "balance": folio.calculate_balance(),
    }


def _folio_event(folio: Folio, reason: str) -> FolioUpdated:
    return FolioUpdated(
        hotel_id=folio.hotel_id,
        folio_id=folio.id,
        folio_number=folio.folio_number,
        reason=reason,
        balance=folio.calculate_balance(),
        status=folio.status,
    )


class FolioService:

    # ========================================================================
    # CONSULTAS
    # ========================================================================

    @staticmethod
    def generate_folio_number(hotel_id: int) -> str:
        return f"F-{hotel_id:03d}-{uuid.uuid4().hex[:8].upper()}"

    @staticmethod
    def get_folio(db: Session, hotel_id: int, folio_id: int, lock: bool = False) -> Folio:
        query = db.query(Folio).filter(Folio.id == folio_id, Folio.hotel_id == hotel_id)
        if lock:
            query = query.with_for_update()
        folio = query.first()
        if not folio:
            raise NotFound(f"Folio {folio_id} no encontrado", folio_id=folio_id)
        return folio

    @staticmethod
    def get_for_reservation(db: Session, reservation_id: int) -> Optional[Folio]:
        return db.query(Folio).filter(Folio.reservation_id == reservation_id).first()

    @staticmethod
    def balance(db: Session, hotel_id: int, folio_id: int) -> Decimal:
        return FolioService.get_folio(db, hotel_id, folio_id).calculate_balance()

    @staticmethod
    def _settings(db: Session, hotel_id: int) -> HotelSettings:
        settings = db.query(HotelSettings).filter(HotelSettings.hotel_id == hotel_id).first()
        if not settings:
            raise NotFound(f"El hotel {hotel_id} no tiene configuración", hotel_id=hotel_id)
        return settings

    # ========================================================================
    # OPERACIONES SIN COMMIT
    # ========================================================================

    @staticmethod
    def get_or_create_for_reservation(db: Session, reservation: Reservation, usuario: str) -> Folio:
        folio = FolioService.get_for_reservation(db, reservation.id)
        if folio:
            return folio
        folio = Folio(
            hotel_id=reservation.hotel_id,
            folio_number=FolioService.generate_folio_number(reservation.hotel_id),
            reservation_id=reservation.id,
            guest_id=reservation.guest_id,
            corporate_account_id=reservation.corporate_account_id,
            status=FolioStatus.OPEN.value,
        )
        db.add(folio)
        db.flush()
        record_action(db, reservation.hotel_id, "folio", folio.id, "FOLIO_OPEN", usuario,
                      f"Folio {folio.folio_number} abierto para reserva {reservation.confirmation_number}")
        return folio

    @staticmethod
    def apply_line_item(
        db: Session,
        folio: Folio,
        category,
        unit_price,
        usuario: str,
        quantity=1,
        description: Optional[str] = None,
        service_date: Optional[date] = None,
        room_id: Optional[int] = None,
        reservation_room_id: Optional[int] = None,
        posting_key: Optional[str] = None,
        apply_charges: bool = True,
    ) -> FolioLineItem:
        """Agrega un cargo a un folio abierto (el llamador ya tomó el lock)"""
        if not folio.is_open():
            raise InvalidTransition(
                f"Folio {folio.folio_number} cerrado: no admite cargos",
                current=folio.status, target="add_line_item",
            )
        category = parse_category(category)
        quantity = Decimal(str(quantity))
        if quantity <= 0:
            raise ValidationFailed("La cantidad debe ser mayor a cero", quantity=str(quantity))

        unit_price = quantize(unit_price)
        amount = quantize(unit_price * quantity)
        tax_amount = Decimal("0.00")
        service_amount = Decimal("0.00")
        if apply_charges and category.value in TAXABLE_CATEGORIES:
            settings = FolioService._settings(db, folio.hotel_id)
            tax_amount = quantize(amount * Decimal(str(settings.tax_rate)) / 100)
            service_amount = quantize(amount * Decimal(str(settings.service_charge_rate)) / 100)

        if service_date is None:
            service_date = BusinessDateService.current(db, folio.hotel_id)

        item = FolioLineItem(
            hotel_id=folio.hotel_id,
            category=category.value,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=amount,
            tax_amount=tax_amount,
            service_charge_amount=service_amount,
            service_date=service_date,
            room_id=room_id,
            reservation_room_id=reservation_room_id,
            posting_key=posting_key,
            created_by=usuario,
        )
        folio.line_items.append(item)
        db.flush()
        record_action(db, folio.hotel_id, "folio", folio.id, "CHARGE", usuario,
                      f"{category.value} {amount} en folio {folio.folio_number}",
                      {"line_item_id": item.id, "posting_key": posting_key})
        return item

    @staticmethod
    def apply_payment(
        db: Session,
        folio: Folio,
        amount: Decimal,
        method: PaymentMethod,
        usuario: str,
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> FolioPayment:
        """Aplica un pago a un folio abierto (el llamador ya tomó el lock)"""
        if not folio.is_open():
            raise InvalidTransition(
                f"Folio {folio.folio_number} cerrado: no admite pagos",
                current=folio.status, target="record_payment",
            )
        payment = FolioPayment(
            hotel_id=folio.hotel_id,
            amount=amount,
            method=method.value,
            reference=reference,
            notes=notes,
            business_date=BusinessDateService.current(db, folio.hotel_id),
            created_by=usuario,
        )
        folio.payments.append(payment)
        db.flush()
        record_action(db, folio.hotel_id, "folio", folio.id, "PAYMENT", usuario,
                      f"Pago {amount} ({method.value}) en folio {folio.folio_number}",
                      {"payment_id": payment.id, "reference": reference})
        return payment

    # ========================================================================
    # OPERACIONES PÚBLICAS
    # ========================================================================

    @staticmethod
    def open_folio(
        db: Session,
        hotel_id: int,
        usuario: str = "sistema",
        reservation_id: Optional[int] = None,
        corporate_account_id: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> Folio:
        if (reservation_id is None) == (corporate_account_id is None):
            raise ValidationFailed("El folio debe pertenecer a una reserva o a una cuenta corporativa")

        def work():
            if reservation_id is not None:
                reservation = db.query(Reservation).filter(
                    Reservation.id == reservation_id, Reservation.hotel_id == hotel_id
                ).first()
                if not reservation:
                    raise NotFound(f"Reserva {reservation_id} no encontrada", reservation_id=reservation_id)
                return FolioService.get_or_create_for_reservation(db, reservation, usuario)

            folio = Folio(
                hotel_id=hotel_id,
                folio_number=FolioService.generate_folio_number(hotel_id),
                corporate_account_id=corporate_account_id,
                status=FolioStatus.OPEN.value,
                notes=notes,
            )
            db.add(folio)
            db.flush()
            record_action(db, hotel_id, "folio", folio.id, "FOLIO_OPEN", usuario,
                          f"Folio {folio.folio_number} abierto para cuenta corporativa {corporate_account_id}")
            return folio

        folio = run_in_transaction(db, work, area="folios")
        event_bus.publish(_folio_event(folio, "opened"))
        log_event("folios", usuario, "Abrir folio", f"folio={folio.folio_number}")
        return folio

    @staticmethod
    def add_line_item(
        db: Session,
        hotel_id: int,
        folio_id: int,
        category,
        unit_price,
        usuario: str = "sistema",
        quantity=1,
        description: Optional[str] = None,
        service_date: Optional[date] = None,
    ) -> FolioLineItem:
        def work():
            folio = FolioService.get_folio(db, hotel_id, folio_id, lock=True)
            item = FolioService.apply_line_item(
                db, folio, category, unit_price, usuario,
                quantity=quantity, description=description, service_date=service_date,
            )
            return folio, item

        folio, item = run_in_transaction(db, work, area="folios")
        event_bus.publish(_folio_event(folio, "line_item_added"))
        log_event("folios", usuario, "Agregar cargo", f"folio={folio.folio_number} {item.category} {item.amount}")
        return item

    @staticmethod
    def void_line_item(db: Session, hotel_id: int, item_id: int, reason: str, usuario: str = "sistema") -> FolioLineItem:
        def work():
            item = db.query(FolioLineItem).filter(
                FolioLineItem.id == item_id, FolioLineItem.hotel_id == hotel_id
            ).first()
            if not item:
                raise NotFound(f"Cargo {item_id} no encontrado", item_id=item_id)
            folio = FolioService.get_folio(db, hotel_id, item.folio_id, lock=True)
            if item.voided:
                raise InvalidTransition(f"El cargo {item_id} ya está anulado", current="voided", target="voided")
            if not folio.is_open():
                raise InvalidTransition(
                    f"Folio {folio.folio_number} cerrado: reabrir antes de anular cargos",
                    current=folio.status, target="void_line_item",
                )
            item.voided = True
            item.voided_at = utc_now()
            item.voided_by = usuario
            item.void_reason = reason
            record_action(db, hotel_id, "folio", folio.id, "CHARGE_VOID", usuario,
                          f"Cargo {item.id} anulado: {reason}", {"line_item_id": item.id, "amount": str(item.amount)})
            return folio, item

        folio, item = run_in_transaction(db, work, area="folios")
        event_bus.publish(_folio_event(folio, "line_item_voided"))
        log_event("folios", usuario, "Anular cargo", f"item={item.id} motivo={reason}")
        return item

    @staticmethod
    def transfer_line_item(
        db: Session, hotel_id: int, item_id: int, target_folio_id: int, usuario: str = "sistema"
    ) -> FolioLineItem:
        """
        Transfiere un cargo a otro folio: el original queda anulado y se crea
        una copia en el destino con referencia al folio de origen.
        """
        def work():
            item = db.query(FolioLineItem).filter(
                FolioLineItem.id == item_id, FolioLineItem.hotel_id == hotel_id
            ).first()
            if not item:
                raise NotFound(f"Cargo {item_id} no encontrado", item_id=item_id)
            if item.folio_id == target_folio_id:
                raise ValidationFailed("El folio destino es el mismo que el de origen")
            # Lock en orden de id para no generar deadlocks entre transferencias cruzadas
            first, second = sorted([item.folio_id, target_folio_id])
            locked = {
                first: FolioService.get_folio(db, hotel_id, first, lock=True),
                second: FolioService.get_folio(db, hotel_id, second, lock=True),
            }
            source, target = locked[item.folio_id], locked[target_folio_id]
            if item.voided:
                raise InvalidTransition(f"El cargo {item_id} está anulado", current="voided", target="transfer")
            for folio in (source, target):
                if not folio.is_open():
                    raise InvalidTransition(
                        f"Folio {folio.folio_number} cerrado", current=folio.status, target="transfer",
                    )

            item.voided = True
            item.voided_at = utc_now()
            item.voided_by = usuario
            item.void_reason = f"Transferido a folio {target.folio_number}"

            copy = FolioLineItem(
                hotel_id=hotel_id,
                category=item.category,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                amount=item.amount,
                tax_amount=item.tax_amount,
                service_charge_amount=item.service_charge_amount,
                service_date=item.service_date,
                room_id=item.room_id,
                transferred_from_folio_id=source.id,
                created_by=usuario,
            )
            target.line_items.append(copy)
            db.flush()
            record_action(db, hotel_id, "folio", source.id, "CHARGE_TRANSFER", usuario,
                          f"Cargo {item.id} transferido a folio {target.folio_number}",
                          {"line_item_id": item.id, "new_line_item_id": copy.id, "target_folio_id": target.id})
            return source, target, copy

        source, target, copy = run_in_transaction(db, work, area="folios")
        event_bus.publish_all([_folio_event(source, "line_item_transferred"), _folio_event(target, "line_item_transferred")])
        log_event("folios", usuario, "Transferir cargo", f"item={item_id} -> folio={target.folio_number}")
        return copy

    @staticmethod
    def add_adjustment(
        db: Session,
        hotel_id: int,
        folio_id: int,
        amount,
        reason: str,
        usuario: str = "sistema",
        is_discount: bool = False,
    ) -> FolioLineItem:
        """
        Ajuste manual del folio (categoría 'other', sin impuesto ni servicio).
        Un monto negativo baja el saldo; un descuento siempre es negativo.
        """
        amount = quantize(amount)
        if amount == 0:
            raise ValidationFailed("El monto del ajuste no puede ser cero")
        if not reason or not reason.strip():
            raise ValidationFailed("El ajuste requiere un motivo")
        if is_discount:
            amount = -abs(amount)
        label = "Descuento" if is_discount else "Ajuste"

        def work():
            folio = FolioService.get_folio(db, hotel_id, folio_id, lock=True)
            item = FolioService.apply_line_item(
                db, folio, LineItemCategory.OTHER, amount, usuario,
                description=f"{label}: {reason}",
                apply_charges=False,
            )
            record_action(db, hotel_id, "folio", folio.id, "ADJUSTMENT", usuario,
                          f"{label} {amount} en folio {folio.folio_number}: {reason}",
                          {"line_item_id": item.id, "is_discount": is_discount})
            return folio, item

        folio, item = run_in_transaction(db, work, area="folios")
        event_bus.publish(_folio_event(folio, "adjustment_added"))
        log_event("folios", usuario, label, f"folio={folio.folio_number} monto={amount} motivo={reason}")
        return item

    @staticmethod
    def split_folio(
        db: Session,
        hotel_id: int,
        source_folio_id: int,
        item_ids: List[int],
        usuario: str = "sistema",
        notes: Optional[str] = None,
    ) -> Folio:
        """
        Divide un folio: los cargos indicados pasan a un folio nuevo del mismo
        titular (huésped o cuenta corporativa, sin la reserva). Los ítems se
        mueven, no se copian, así que el total de ambos folios no cambia.
        """
        item_ids = list(dict.fromkeys(item_ids or []))
        if not item_ids:
            raise ValidationFailed("Indicar al menos un cargo para dividir el folio")

        def work():
            source = FolioService.get_folio(db, hotel_id, source_folio_id, lock=True)
            if not source.is_open():
                raise InvalidTransition(
                    f"Folio {source.folio_number} cerrado", current=source.status, target="split",
                )
            items = db.query(FolioLineItem).filter(
                FolioLineItem.id.in_(item_ids), FolioLineItem.folio_id == source.id
            ).order_by(FolioLineItem.id).all()
            missing = sorted(set(item_ids) - {item.id for item in items})
            if missing:
                raise ValidationFailed(
                    f"Cargos que no pertenecen al folio {source.folio_number}", item_ids=missing,
                )
            voided = [item.id for item in items if item.voided]
            if voided:
                raise InvalidTransition("No se dividen cargos anulados", current="voided", target="split",
                                        item_ids=voided)

            target = Folio(
                hotel_id=hotel_id,
                folio_number=FolioService.generate_folio_number(hotel_id),
                guest_id=source.guest_id,
                corporate_account_id=source.corporate_account_id,
                status=FolioStatus.OPEN.value,
                notes=notes or f"Dividido de {source.folio_number}",
            )
            db.add(target)
            db.flush()
            for item in items:
                target.line_items.append(item)
                item.transferred_from_folio_id = source.id
            db.flush()
            db.refresh(source)
            record_action(db, hotel_id, "folio", source.id, "FOLIO_SPLIT", usuario,
                          f"Folio {source.folio_number} dividido en {target.folio_number}",
                          {"item_ids": [item.id for item in items], "target_folio_id": target.id})
            return source, target

        source, target = run_in_transaction(db, work, area="folios")
        event_bus.publish_all([_folio_event(source, "split"), _folio_event(target, "opened")])
        log_event("folios", usuario, "Dividir folio",
                  f"folio={source.folio_number} -> {target.folio_number} items={item_ids}")
        return target

    @staticmethod
    def record_payment(
        db: Session,
        hotel_id: int,
        folio_id: int,
        amount,
        method,
        usuario: str = "sistema",
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[FolioPayment, List[str]]:
        """
        Registra un pago. Un sobrepago no es error: vuelve como advertencia.

        Returns:
            (pago, advertencias)
        """
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationFailed("El monto del pago debe ser mayor a cero", amount=str(amount))
        method = parse_method(method)

        def work():
            folio = FolioService.get_folio(db, hotel_id, folio_id, lock=True)
            payment = FolioService.apply_payment(db, folio, amount, method, usuario, reference, notes)
            return folio, payment

        folio, payment = run_in_transaction(db, work, area="folios")

        warnings = []
        balance = folio.calculate_balance()
        if balance < 0:
            warnings.append(f"Sobrepago: saldo a favor del huésped {-balance}")
            log_warning("folios", usuario, "Sobrepago", f"folio={folio.folio_number} saldo={balance}")

        event_bus.publish(_folio_event(folio, "payment_recorded"))
        log_event("folios", usuario, "Registrar pago", f"folio={folio.folio_number} monto={amount} metodo={method.value}")
        return payment, warnings

    @staticmethod
    def bulk_payment(
        db: Session,
        hotel_id: int,
        folio_ids: List[int],
        total_amount,
        method,
        usuario: str = "sistema",
        reference: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Tuple[List[FolioPayment], List[str]]:
        """
        Reparte un pago entre varios folios, en el orden indicado: cada folio
        abierto con saldo recibe min(restante, saldo) hasta agotar el monto.

        Returns:
            (pagos, advertencias)
        """
        total_amount = quantize(total_amount)
        if total_amount <= 0:
            raise ValidationFailed("El monto del pago debe ser mayor a cero", amount=str(total_amount))
        method = parse_method(method)
        folio_ids = list(dict.fromkeys(folio_ids or []))
        if not folio_ids:
            raise ValidationFailed("Indicar al menos un folio")
        note = f"{notes} (pago múltiple)" if notes else "Pago múltiple"

        def work():
            # Lock en orden de id, reparto en el orden pedido
            locked = {fid: FolioService.get_folio(db, hotel_id, fid, lock=True) for fid in sorted(folio_ids)}
            eligible = [
                locked[fid] for fid in folio_ids
                if locked[fid].is_open() and locked[fid].calculate_balance() > 0
            ]
            if not eligible:
                raise ValidationFailed("Ningún folio seleccionado tiene saldo pendiente", folio_ids=folio_ids)

            remaining = total_amount
            applied = []
            for folio in eligible:
                if remaining <= 0:
                    break
                amount = min(remaining, folio.calculate_balance())
                applied.append((folio, FolioService.apply_payment(db, folio, amount, method, usuario, reference, note)))
                remaining -= amount
            return applied, remaining

        applied, remaining = run_in_transaction(db, work, area="folios")

        warnings = []
        if remaining > 0:
            warnings.append(f"Sobrante sin aplicar: {remaining}")
            log_warning("folios", usuario, "Pago múltiple con sobrante", f"folios={folio_ids} sobrante={remaining}")

        event_bus.publish_all([_folio_event(folio, "payment_recorded") for folio, _ in applied])
        log_event("folios", usuario, "Pago múltiple",
                  f"folios={[folio.folio_number for folio, _ in applied]} monto={total_amount} metodo={method.value}")
        return [payment for _, payment in applied], warnings

    @staticmethod
    def void_payment(db: Session, hotel_id: int, payment_id: int, reason: str, usuario: str = "sistema") -> FolioPayment:
        """Anula un pago: el saldo sube exactamente el monto. No reabre folios cerrados."""
        def work():
            payment = db.query(FolioPayment).filter(
                FolioPayment.id == payment_id, FolioPayment.hotel_id == hotel_id
            ).first()
            if not payment:
                raise NotFound(f"Pago {payment_id} no encontrado", payment_id=payment_id)
            folio = FolioService.get_folio(db, hotel_id, payment.folio_id, lock=True)
            if payment.voided:
                raise InvalidTransition(f"El pago {payment_id} ya está anulado", current="voided", target="voided")
            payment.voided = True
            payment.voided_at = utc_now()
            payment.voided_by = usuario
            payment.void_reason = reason
            record_action(db, hotel_id, "folio", folio.id, "PAYMENT_VOID", usuario,
                          f"Pago {payment.id} anulado: {reason}", {"payment_id": payment.id, "amount": str(payment.amount)})
            return folio, payment

        folio, payment = run_in_transaction(db, work, area="folios")
        if not folio.is_open():
            log_warning("folios", usuario, "Pago anulado en folio cerrado",
                        f"folio={folio.folio_number} saldo={folio.calculate_balance()}")
        event_bus.publish(_folio_event(folio, "payment_voided"))
        log_event("folios", usuario, "Anular pago", f"pago={payment.id} motivo={reason}")
        return payment

    @staticmethod
    def close_folio(
        db: Session,
        hotel_id: int,
        folio_id: int,
        usuario: str = "sistema",
        write_off: bool = False,
        reason: Optional[str] = None,
    ) -> Folio:
        """
        Cierra el folio con saldo cero, o con un ajuste explícito (write-off)
        que lleva el saldo a cero. No se cierra el folio de una estadía en curso.
        """
        def work():
            folio = FolioService.get_folio(db, hotel_id, folio_id, lock=True)
            if not folio.is_open():
                raise InvalidTransition(f"Folio {folio.folio_number} ya está cerrado", current=folio.status, target="closed")
            if folio.reservation and folio.reservation.status == ReservationStatus.CHECKED_IN.value:
                raise InvalidTransition(
                    f"Folio {folio.folio_number}: la estadía sigue en curso",
                    current=folio.reservation.status, target="closed",
                )
            balance = folio.calculate_balance()
            if balance != 0:
                if not write_off:
                    raise InvalidTransition(
                        f"Folio {folio.folio_number} con saldo {balance}: requiere ajuste para cerrar",
                        current=folio.status, target="closed", balance=str(balance),
                    )
                FolioService.apply_line_item(
                    db, folio, LineItemCategory.OTHER, -balance, usuario,
                    description=f"Ajuste de cierre: {reason or 'write-off'}",
                    apply_charges=False,
                )
            folio.status = FolioStatus.CLOSED.value
            folio.closed_at = utc_now()
            folio.closed_by = usuario
            record_action(db, hotel_id, "folio", folio.id, "FOLIO_CLOSE", usuario,
                          f"Folio {folio.folio_number} cerrado", {"write_off": str(balance) if write_off else None})
            return folio

        folio = run_in_transaction(db, work, area="folios")
        event_bus.publish(_folio_event(folio, "closed"))
        log_event("folios", usuario, "Cerrar folio", f"folio={folio.folio_number} write_off={write_off}")
        return folio

    @staticmethod
    def reopen_folio(db: Session, hotel_id: int, folio_id: int, usuario: str = "sistema",
                     reason: Optional[str] = None) -> Folio:
        def work():
            folio = FolioService.get_folio(db, hotel_id, folio_id, lock=True)
            if folio.is_open():
                raise InvalidTransition(f"Folio {folio.folio_number} ya está abierto", current=folio.status, target="open")
            folio.status = FolioStatus.OPEN.value
            folio.closed_at = None
            folio.closed_by = None
            record_action(db, hotel_id, "folio", folio.id, "FOLIO_REOPEN", usuario,
                          f"Folio {folio.folio_number} reabierto: {reason or ''}".strip())
            return folio

        folio = run_in_transaction(db, work, area="folios")
        event_bus.publish(_folio_event(folio, "reopened"))
        log_event("folios", usuario, "Reabrir folio", f"folio={folio.folio_number}")
        return folio

    # ========================================================================
    # PUNTO DE VENTA
    # ========================================================================

    @staticmethod
    def create_pos_order(db: Session, hotel_id: int, folio_id: int, description: str, amount,
                         outlet: str = "restaurant", usuario: str = "sistema") -> PosOrder:
        amount = quantize(amount)
        if amount <= 0:
            raise ValidationFailed("El monto del consumo debe ser mayor a cero", amount=str(amount))
        FolioService.get_folio(db, hotel_id, folio_id)

        def work():
            order = PosOrder(hotel_id=hotel_id, folio_id=folio_id, outlet=outlet,
                             description=description, amount=amount, status=PosOrderStatus.OPEN.value)
            db.add(order)
            return order

        order = run_in_transaction(db, work, area="pos")
        log_event("pos", usuario, "Nuevo consumo", f"orden={order.id} folio={folio_id} monto={amount}")
        return order

    @staticmethod
    def post_pos_order(db: Session, hotel_id: int, order_id: int, usuario: str = "sistema") -> FolioLineItem:
        """Carga un consumo POS al folio. Idempotente por orden."""
        def work():
            order = db.query(PosOrder).filter(PosOrder.id == order_id, PosOrder.hotel_id == hotel_id).first()
            if not order:
                raise NotFound(f"Orden POS {order_id} no encontrada", order_id=order_id)
            folio = FolioService.get_folio(db, hotel_id, order.folio_id, lock=True)
            if order.status == PosOrderStatus.POSTED.value:
                return folio, db.query(FolioLineItem).filter(FolioLineItem.id == order.line_item_id).first(), False
            if order.status == PosOrderStatus.CANCELLED.value:
                raise InvalidTransition(f"Orden POS {order_id} cancelada", current=order.status, target="posted")
            item = FolioService.apply_line_item(
                db, folio, LineItemCategory.FOOD_BEVERAGE, order.amount, usuario,
                description=f"{order.outlet}: {order.description}",
                posting_key=f"pos:{order.id}",
            )
            order.status = PosOrderStatus.POSTED.value
            order.line_item_id = item.id
            return folio, item, True

        folio, item, created = run_in_transaction(db, work, area="pos")
        if created:
            event_bus.publish(_folio_event(folio, "pos_order_posted"))
            log_event("pos", usuario, "Cargar consumo a folio", f"orden={order_id} folio={folio.folio_number}")
        return item

    # ========================================================================
    # REPORTES
    # ========================================================================

    @staticmethod
    def outstanding_folios(db: Session, hotel_id: int) -> List[dict]:
        """Folios abiertos con saldo pendiente (> 0)"""
        folios = db.query(Folio).filter(
            Folio.hotel_id == hotel_id, Folio.status == FolioStatus.OPEN.value
        ).order_by(Folio.id).all()
        result = []
        for folio in folios:
            balance = folio.calculate_balance()
            if balance <= 0:
                continue
            room_number = None
            if folio.reservation and folio.reservation.rooms:
                room_ids = [seg.room_id for seg in folio.reservation.rooms if seg.room_id]
                if room_ids:
                    room = db.query(Room).filter(Room.id == room_ids[-1]).first()
                    room_number = room.room_number if room else None
            if folio.guest:
                holder = folio.guest.full_name
            elif folio.corporate_account:
                holder = folio.corporate_account.name
            else:
                holder = None
            result.append({
                "folio_id": folio.id,
                "folio_number": folio.folio_number,
                "holder": holder,
                "room_number": room_number,
                "reservation_status": folio.reservation.status if folio.reservation else None,
                "total_amount": folio.calculate_total(),
                "paid_amount": folio.calculate_paid(),
                "balance": balance,
            })
        return result

    @staticmethod
    def payments_by_method(db: Session, hotel_id: int, business_date: date) -> dict:
        payments = db.query(FolioPayment).filter(
            FolioPayment.hotel_id == hotel_id,
            FolioPayment.business_date == business_date,
            FolioPayment.voided.is_(False),
        ).all()
        totals = {method.value: Decimal("0.00") for method in PaymentMethod}
        for payment in payments:
            totals[payment.method] += quantize(payment.amount)
        return totals

    @staticmethod
    def folio_stats(db: Session, hotel_id: int) -> dict:
        folios = db.query(Folio).filter(Folio.hotel_id == hotel_id).all()
        open_folios = [f for f in folios if f.is_open()]
        return {
            "open_folios": len(open_folios),
            "closed_folios": len(folios) - len(open_folios),
            "outstanding_balance": sum((f.calculate_balance() for f in open_folios if f.calculate_balance() > 0),
                                       Decimal("0.00")),
            "payments_today": FolioService.payments_by_method(db, hotel_id, BusinessDateService.current(db, hotel_id)),
        }

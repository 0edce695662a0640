from decimal import Decimal

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
)
from sqlalchemy.orm import relationship
from database.conexion import Base
from utils.timezone import utc_now
import enum


CENT = Decimal("0.01")


class FolioStatus(str, enum.Enum):
    OPEN = "open"
    CLOSED = "closed"


class LineItemCategory(str, enum.Enum):
    ROOM = "room"
    TAX = "tax"
    SERVICE_CHARGE = "service_charge"
    FOOD_BEVERAGE = "food_beverage"
    OTHER = "other"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BANK_TRANSFER = "bank_transfer"
    MOBILE_PAYMENT = "mobile_payment"
    CORPORATE_BILLING = "corporate_billing"
    OTHER = "other"


def _money(value) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


class Folio(Base):
    """
    Cuenta corriente de una estadía (o de una cuenta corporativa).
    El saldo NUNCA se guarda: se calcula a partir de ítems y pagos no anulados.
    """
    __tablename__ = "folios"
    __table_args__ = (
        Index("idx_folio_status", "hotel_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    folio_number = Column(String(40), nullable=False, unique=True)

    # Una estadía tiene un solo folio; las cuentas corporativas pueden tener varios
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True, unique=True)
    corporate_account_id = Column(Integer, ForeignKey("corporate_accounts.id"), nullable=True)
    guest_id = Column(Integer, ForeignKey("guests.id"), nullable=True)

    status = Column(String(20), nullable=False, default=FolioStatus.OPEN.value)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    closed_by = Column(String(50), nullable=True)

    reservation = relationship("Reservation")
    corporate_account = relationship("CorporateAccount")
    guest = relationship("Guest")
    line_items = relationship(
        "FolioLineItem",
        back_populates="folio",
        foreign_keys="FolioLineItem.folio_id",
        order_by="FolioLineItem.id",
    )
    payments = relationship("FolioPayment", back_populates="folio", order_by="FolioPayment.id")

    def active_items(self):
        return [item for item in self.line_items if not item.voided]

    def active_payments(self):
        return [payment for payment in self.payments if not payment.voided]

    def calculate_subtotal(self) -> Decimal:
        return _money(sum((_money(i.amount) for i in self.active_items()), Decimal("0")))

    def calculate_tax(self) -> Decimal:
        return _money(sum((_money(i.tax_amount) for i in self.active_items()), Decimal("0")))

    def calculate_service_charge(self) -> Decimal:
        return _money(sum((_money(i.service_charge_amount) for i in self.active_items()), Decimal("0")))

    def calculate_total(self) -> Decimal:
        """Total de cargos (neto + impuestos + servicio) excluyendo anulados"""
        return self.calculate_subtotal() + self.calculate_tax() + self.calculate_service_charge()

    def calculate_paid(self) -> Decimal:
        """Total pagado excluyendo pagos anulados"""
        return _money(sum((_money(p.amount) for p in self.active_payments()), Decimal("0")))

    def calculate_balance(self) -> Decimal:
        """Saldo = total - pagado (positivo: el huésped debe)"""
        return self.calculate_total() - self.calculate_paid()

    def is_open(self) -> bool:
        return self.status == FolioStatus.OPEN.value


class FolioLineItem(Base):
    """
    Cargo del folio. Nunca se borra: la corrección es una anulación (voided).
    posting_key identifica cargos automáticos (noche de auditoría, POS) y es único.
    """
    __tablename__ = "folio_line_items"
    __table_args__ = (
        Index("idx_item_folio", "folio_id"),
        Index("idx_item_service_date", "hotel_id", "service_date", "category"),
        UniqueConstraint("posting_key", name="uq_item_posting_key"),
        # Un cargo de habitación por segmento y fecha, aunque el huésped cambie de habitación
        UniqueConstraint("reservation_room_id", "service_date", "category", name="uq_item_segment_night"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    folio_id = Column(Integer, ForeignKey("folios.id", ondelete="CASCADE"), nullable=False)

    # room | tax | service_charge | food_beverage | other
    category = Column(String(20), nullable=False)
    description = Column(String(200), nullable=True)

    quantity = Column(Numeric(12, 2), nullable=False, default=1)
    unit_price = Column(Numeric(12, 2), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False, default=0)
    service_charge_amount = Column(Numeric(12, 2), nullable=False, default=0)

    service_date = Column(Date, nullable=False)
    room_id = Column(Integer, ForeignKey("rooms.id"), nullable=True)
    reservation_room_id = Column(Integer, ForeignKey("reservation_rooms.id"), nullable=True)
    posting_key = Column(String(120), nullable=True)

    # Trazabilidad de transferencias entre folios
    transferred_from_folio_id = Column(Integer, ForeignKey("folios.id"), nullable=True)

    voided = Column(Boolean, default=False, nullable=False)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    voided_by = Column(String(50), nullable=True)
    void_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    created_by = Column(String(50), nullable=True)

    folio = relationship("Folio", back_populates="line_items", foreign_keys=[folio_id])

    @property
    def total(self) -> Decimal:
        return _money(self.amount) + _money(self.tax_amount) + _money(self.service_charge_amount)


class FolioPayment(Base):
    """Pago aplicado a un folio. La anulación lo marca, nunca lo borra."""
    __tablename__ = "folio_payments"
    __table_args__ = (
        Index("idx_payment_folio", "folio_id"),
        Index("idx_payment_business_date", "hotel_id", "business_date"),
    )

    id = Column(Integer, primary_key=True)
    hotel_id = Column(Integer, ForeignKey("hotels.id", ondelete="CASCADE"), nullable=False)
    folio_id = Column(Integer, ForeignKey("folios.id", ondelete="CASCADE"), nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(30), nullable=False)
    reference = Column(String(120), nullable=True)
    notes = Column(Text, nullable=True)
    business_date = Column(Date, nullable=False)

    voided = Column(Boolean, default=False, nullable=False)
    voided_at = Column(DateTime(timezone=True), nullable=True)
    voided_by = Column(String(50), nullable=True)
    void_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utc_now)
    created_by = Column(String(50), nullable=True)

    folio = relationship("Folio", back_populates="payments")

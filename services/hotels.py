from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

import config
from models.core import Hotel, HotelSettings, Guest, CorporateAccount
from services.business_date import BusinessDateService
from services.errors import NotFound, ValidationFailed
from utils.logging_utils import log_event
from utils.timezone import get_hotel_today
from utils.transactions import run_in_transaction


class HotelService:
    """Alta de hotel (tenant) con su configuración y fecha operativa inicial"""

    @staticmethod
    def create_hotel(
        db: Session,
        name: str,
        code: str,
        usuario: str = "sistema",
        business_date: Optional[date] = None,
        timezone: Optional[str] = None,
        tax_rate: Optional[Decimal] = None,
        service_charge_rate: Optional[Decimal] = None,
        allow_checkout_with_balance: Optional[bool] = None,
        allow_audit_with_outstanding_folios: Optional[bool] = None,
    ) -> Hotel:
        tz_name = timezone or config.DEFAULT_TIMEZONE

        def work():
            hotel = Hotel(name=name, code=code)
            db.add(hotel)
            db.flush()
            db.add(HotelSettings(
                hotel_id=hotel.id,
                timezone=tz_name,
                tax_rate=tax_rate if tax_rate is not None else config.DEFAULT_TAX_RATE,
                service_charge_rate=(
                    service_charge_rate if service_charge_rate is not None
                    else config.DEFAULT_SERVICE_CHARGE_RATE
                ),
                allow_checkout_with_balance=(
                    allow_checkout_with_balance if allow_checkout_with_balance is not None
                    else config.ALLOW_CHECKOUT_WITH_BALANCE
                ),
                allow_audit_with_outstanding_folios=(
                    allow_audit_with_outstanding_folios if allow_audit_with_outstanding_folios is not None
                    else config.ALLOW_AUDIT_WITH_OUTSTANDING_FOLIOS
                ),
            ))
            BusinessDateService.initialize(db, hotel.id, business_date or get_hotel_today(tz_name))
            return hotel

        try:
            hotel = run_in_transaction(db, work, area="hoteles")
        except IntegrityError:
            raise ValidationFailed(f"Ya existe un hotel con código {code}", code=code)

        log_event("hoteles", usuario, "Alta hotel", f"id={hotel.id} code={code}")
        return hotel

    @staticmethod
    def get_hotel(db: Session, hotel_id: int) -> Hotel:
        hotel = db.query(Hotel).filter(Hotel.id == hotel_id).first()
        if not hotel:
            raise NotFound(f"Hotel {hotel_id} no encontrado", hotel_id=hotel_id)
        return hotel

    @staticmethod
    def get_settings(db: Session, hotel_id: int) -> HotelSettings:
        settings = db.query(HotelSettings).filter(HotelSettings.hotel_id == hotel_id).first()
        if not settings:
            raise NotFound(f"El hotel {hotel_id} no tiene configuración", hotel_id=hotel_id)
        return settings

    @staticmethod
    def update_settings(db: Session, hotel_id: int, usuario: str = "sistema", **changes) -> HotelSettings:
        def work():
            settings = HotelService.get_settings(db, hotel_id)
            for key, value in changes.items():
                if value is not None and hasattr(settings, key):
                    setattr(settings, key, value)
            return settings

        settings = run_in_transaction(db, work, area="hoteles")
        log_event("hoteles", usuario, "Actualizar configuración", f"hotel={hotel_id} {changes}")
        return settings

    @staticmethod
    def create_guest(db: Session, hotel_id: int, first_name: str, last_name: str,
                     email: Optional[str] = None, phone: Optional[str] = None) -> Guest:
        def work():
            guest = Guest(hotel_id=hotel_id, first_name=first_name, last_name=last_name, email=email, phone=phone)
            db.add(guest)
            return guest

        return run_in_transaction(db, work, area="huespedes")

    @staticmethod
    def create_corporate_account(db: Session, hotel_id: int, name: str,
                                 contact_email: Optional[str] = None) -> CorporateAccount:
        def work():
            account = CorporateAccount(hotel_id=hotel_id, name=name, contact_email=contact_email)
            db.add(account)
            return account

        return run_in_transaction(db, work, area="empresas")

"""
Fecha operativa del hotel.
Fila única por hotel; sólo el cierre de la auditoría nocturna la avanza.
"""

from datetime import date, timedelta

from sqlalchemy.orm import Session

from models.core import BusinessDate
from services.errors import ConcurrentModification, NotFound
from utils.timezone import utc_now


class BusinessDateService:

    @staticmethod
    def initialize(db: Session, hotel_id: int, start_date: date) -> BusinessDate:
        """Crea la fila de fecha operativa (sin commit)"""
        business_date = BusinessDate(hotel_id=hotel_id, current_date=start_date, version=1)
        db.add(business_date)
        return business_date

    @staticmethod
    def get(db: Session, hotel_id: int) -> BusinessDate:
        business_date = db.query(BusinessDate).filter(BusinessDate.hotel_id == hotel_id).first()
        if not business_date:
            raise NotFound(f"El hotel {hotel_id} no tiene fecha operativa inicializada", hotel_id=hotel_id)
        return business_date

    @staticmethod
    def current(db: Session, hotel_id: int) -> date:
        return BusinessDateService.get(db, hotel_id).current_date

    @staticmethod
    def advance(db: Session, hotel_id: int, expected_date: date) -> date:
        """
        Compare-and-swap: avanza un día sólo si la fecha vigente sigue siendo
        `expected_date`. Corre dentro de la transacción de cierre de auditoría.

        Raises:
            ConcurrentModification: otra operación ya movió la fecha
        """
        new_date = expected_date + timedelta(days=1)
        rows = (
            db.query(BusinessDate)
            .filter(
                BusinessDate.hotel_id == hotel_id,
                BusinessDate.current_date == expected_date,
            )
            .update(
                {
                    BusinessDate.current_date: new_date,
                    BusinessDate.version: BusinessDate.version + 1,
                    BusinessDate.updated_at: utc_now(),
                },
                synchronize_session=False,
            )
        )
        if rows == 0:
            raise ConcurrentModification(
                f"La fecha operativa ya no es {expected_date.isoformat()}",
                hotel_id=hotel_id,
                expected=expected_date.isoformat(),
            )
        return new_date

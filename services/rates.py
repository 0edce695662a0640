"""
Resolución de tarifa nocturna.
Cascada: tarifa del segmento -> tarifa diaria del tipo -> tarifa base del tipo.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from models.core import DailyRate, ReservationRoom, RoomType


def _safe_decimal(value, fallback: Decimal = Decimal("0")) -> Decimal:
    """Convierte a Decimal de forma segura"""
    if value is None:
        return fallback
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (ValueError, TypeError, ArithmeticError):
        return fallback


class RateResolver:

    @staticmethod
    def nightly_rate(db: Session, hotel_id: int, segment: ReservationRoom, night: date) -> Tuple[Decimal, str]:
        """
        Returns:
            (tarifa, origen) con origen en segment | daily_rate | room_type | missing
        """
        if segment.rate_per_night is not None:
            return _safe_decimal(segment.rate_per_night), "segment"

        daily: Optional[DailyRate] = db.query(DailyRate).filter(
            DailyRate.hotel_id == hotel_id,
            DailyRate.room_type_id == segment.room_type_id,
            DailyRate.rate_date == night,
        ).first()
        if daily:
            return _safe_decimal(daily.price), "daily_rate"

        room_type = db.query(RoomType).filter(RoomType.id == segment.room_type_id).first()
        if room_type and room_type.base_rate is not None:
            return _safe_decimal(room_type.base_rate), "room_type"

        return Decimal("0"), "missing"

    @staticmethod
    def segment_total(db: Session, hotel_id: int, segment: ReservationRoom) -> Decimal:
        """Suma de tarifas de todas las noches del segmento [start_date, end_date)"""
        total = Decimal("0")
        night = segment.start_date
        while night < segment.end_date:
            rate, _ = RateResolver.nightly_rate(db, hotel_id, segment, night)
            total += rate
            night += timedelta(days=1)
        return total

from datetime import datetime, date
import pytz

from config import DEFAULT_TIMEZONE

# Zona horaria por defecto; cada hotel puede sobreescribirla en HotelSettings
HOTEL_TZ = pytz.timezone(DEFAULT_TIMEZONE)


def utc_now() -> datetime:
    """Momento actual en UTC (timestamps persistidos)"""
    return datetime.now(pytz.utc)


def get_hotel_now(tz_name: str = None) -> datetime:
    """Returns current time in Hotel Timezone"""
    tz = pytz.timezone(tz_name) if tz_name else HOTEL_TZ
    return datetime.now(tz)


def get_hotel_today(tz_name: str = None) -> date:
    """Fecha calendario local del hotel (se usa para inicializar la fecha operativa)"""
    return get_hotel_now(tz_name).date()

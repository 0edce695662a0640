"""
Configuración general del núcleo de operaciones del hotel
(auditoría nocturna, folios, estado de habitaciones)
"""
import os
from decimal import Decimal

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "si")


# Base de datos
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    DATABASE_URL = (
        f"postgresql+psycopg://{os.getenv('DB_USER', 'hotel')}:{os.getenv('DB_PASSWORD', 'hotel')}"
        f"@{os.getenv('DB_HOST', 'localhost')}:{os.getenv('DB_PORT', '5432')}/{os.getenv('DB_NAME', 'hotel')}"
    )

# Valores por defecto de HotelSettings al dar de alta un hotel
DEFAULT_TIMEZONE = os.getenv("HOTEL_TIMEZONE", "America/Argentina/Buenos_Aires")
DEFAULT_TAX_RATE = Decimal(os.getenv("DEFAULT_TAX_RATE", "0"))
DEFAULT_SERVICE_CHARGE_RATE = Decimal(os.getenv("DEFAULT_SERVICE_CHARGE_RATE", "0"))
ALLOW_CHECKOUT_WITH_BALANCE = _env_bool("ALLOW_CHECKOUT_WITH_BALANCE", "true")
ALLOW_AUDIT_WITH_OUTSTANDING_FOLIOS = _env_bool("ALLOW_AUDIT_WITH_OUTSTANDING_FOLIOS", "true")

# Reintentos ante fallas transitorias de persistencia
TRANSACTION_RETRIES = int(os.getenv("TRANSACTION_RETRIES", "1"))

# Eventos recientes retenidos para tableros que hacen polling
RECENT_EVENTS_BUFFER = int(os.getenv("RECENT_EVENTS_BUFFER", "200"))

# Logs
LOG_FILE = os.getenv("LOG_FILE", "hotel_logs.txt")

# Rate limiting
RATE_LIMIT_ENABLED = _env_bool("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_DEFAULT = os.getenv("RATE_LIMIT_DEFAULT", "100/minute")
RATE_LIMIT_AUDIT = os.getenv("RATE_LIMIT_AUDIT", "20/minute")
RATE_LIMIT_STORAGE_URI = os.getenv("REDIS_URL", "memory://")

# CORS
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
    if origin.strip()
]

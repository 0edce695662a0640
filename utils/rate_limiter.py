"""
Rate limiting de la API.
Límite general por IP y uno más estricto para las operaciones de auditoría
nocturna (ver RATE_LIMIT_AUDIT en endpoints/night_audit.py).
"""
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from config import RATE_LIMIT_DEFAULT, RATE_LIMIT_ENABLED, RATE_LIMIT_STORAGE_URI

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[RATE_LIMIT_DEFAULT],
    storage_uri=RATE_LIMIT_STORAGE_URI,  # redis://... en producción
    strategy="fixed-window",
    enabled=RATE_LIMIT_ENABLED,
)


def setup_rate_limiting(app):
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    return limiter

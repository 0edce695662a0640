"""
Errores de dominio del núcleo operativo.
Cada error conoce su código HTTP; main.py registra un único handler que
los traduce a JSON {"error", "detail", "context"}.
"""

from typing import Optional


class HotelError(Exception):
    code = "hotel_error"
    status_code = 400

    def __init__(self, message: str, **context):
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict:
        return {"error": self.code, "detail": self.message, "context": self.context}


class NotFound(HotelError):
    code = "not_found"
    status_code = 404


class ValidationFailed(HotelError):
    code = "validation_failed"
    status_code = 422


class InvalidTransition(HotelError):
    """Transición de estado no permitida (habitación, reserva, folio, auditoría)"""
    code = "invalid_transition"
    status_code = 409

    def __init__(self, message: str, current: Optional[str] = None, target: Optional[str] = None, **context):
        super().__init__(message, current=current, target=target, **context)
        self.current = current
        self.target = target


class AlreadyCheckedIn(InvalidTransition):
    code = "already_checked_in"


class RoomUnavailable(HotelError):
    code = "room_unavailable"
    status_code = 409


class IncompleteAssignment(HotelError):
    code = "incomplete_assignment"
    status_code = 422


class AuditAlreadyRunning(HotelError):
    code = "audit_already_running"
    status_code = 409


class DuplicatePosting(HotelError):
    """El cargo ya existe: dentro del posteo se absorbe como éxito"""
    code = "duplicate_posting"
    status_code = 409


class ConcurrentModification(HotelError):
    code = "concurrent_modification"
    status_code = 409


class PersistenceFailure(HotelError):
    code = "persistence_failure"
    status_code = 503


class OutstandingBalance(HotelError):
    """Sólo se lanza cuando la política del hotel convierte la advertencia en bloqueo"""
    code = "outstanding_balance"
    status_code = 409

"""
Eventos de dominio en proceso (publicación / suscripción).

Reglas:
- Los servicios publican SÓLO después del commit: lo que se anuncia ya existe.
- Un suscriptor que falla se loguea y no corta al resto ni vuelve al request.
- Registro en memoria, thread-safe.
"""

from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from decimal import Decimal
from threading import Lock
from typing import Callable, Dict, List, Optional, Tuple

from config import RECENT_EVENTS_BUFFER
from utils.logging_utils import log_error
from utils.timezone import utc_now


# ========================================================================
# EVENTOS
# ========================================================================

@dataclass(frozen=True)
class DomainEvent:
    hotel_id: int
    occurred_at: datetime = field(default_factory=utc_now, init=False)

    @property
    def event_type(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        data = {"event_type": self.event_type}
        for key, value in asdict(self).items():
            if isinstance(value, (date, datetime)):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = str(value)
            data[key] = value
        return data


@dataclass(frozen=True)
class RoomStatusChanged(DomainEvent):
    room_id: int = 0
    room_number: str = ""
    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class FolioUpdated(DomainEvent):
    folio_id: int = 0
    folio_number: str = ""
    reason: str = ""
    balance: Decimal = Decimal("0")
    status: str = ""


@dataclass(frozen=True)
class AuditPhaseChanged(DomainEvent):
    audit_id: int = 0
    business_date: Optional[date] = None
    old_phase: str = ""
    new_phase: str = ""


@dataclass(frozen=True)
class BusinessDateAdvanced(DomainEvent):
    old_date: Optional[date] = None
    new_date: Optional[date] = None


# ========================================================================
# BUS
# ========================================================================

Handler = Callable[[DomainEvent], None]


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Tuple[Handler, str]]] = {}
        self._lock = Lock()

    def subscribe(self, event_type: str, handler: Handler, name: Optional[str] = None) -> None:
        """Registra un handler para un tipo de evento ('*' recibe todos)"""
        if not callable(handler):
            raise TypeError(f"El handler debe ser callable, recibido {type(handler)}")
        label = name or getattr(handler, "__qualname__", str(handler))
        with self._lock:
            handlers = self._subscribers.setdefault(event_type, [])
            if any(h == handler for h, _ in handlers):
                return
            handlers.append((handler, label))

    def unsubscribe(self, event_type: str, handler: Handler) -> None:
        with self._lock:
            handlers = self._subscribers.get(event_type, [])
            self._subscribers[event_type] = [(h, n) for h, n in handlers if h != handler]

    def _handlers_for(self, event_type: str) -> List[Tuple[Handler, str]]:
        with self._lock:
            return list(self._subscribers.get(event_type, [])) + list(self._subscribers.get("*", []))

    def publish(self, event: DomainEvent) -> dict:
        """
        Entrega el evento a todos los suscriptores. Nunca lanza excepciones.

        Returns:
            {"event_type", "notified", "failed", "failures": [...]}
        """
        result = {"event_type": event.event_type, "notified": 0, "failed": 0, "failures": []}
        for handler, label in self._handlers_for(event.event_type):
            try:
                handler(event)
                result["notified"] += 1
            except Exception as exc:
                result["failed"] += 1
                result["failures"].append({"handler": label, "error": str(exc)})
                log_error("eventos", "sistema", "Suscriptor falló", f"{label} {event.event_type}: {exc}")
        return result

    def publish_all(self, events: List[DomainEvent]) -> None:
        for event in events:
            self.publish(event)


class RecentEventsBuffer:
    """Últimos N eventos por hotel para tableros que consultan por polling"""

    def __init__(self, maxlen: int = RECENT_EVENTS_BUFFER):
        self._events = deque(maxlen=maxlen)
        self._lock = Lock()

    def __call__(self, event: DomainEvent) -> None:
        with self._lock:
            self._events.append(event)

    def recent(self, hotel_id: int, limit: int = 50) -> List[dict]:
        with self._lock:
            matching = [e for e in self._events if e.hotel_id == hotel_id]
        return [e.to_dict() for e in matching[-limit:]][::-1]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


event_bus = EventBus()
recent_events = RecentEventsBuffer()
event_bus.subscribe("*", recent_events, name="recent_events")

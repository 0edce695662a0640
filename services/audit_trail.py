from typing import Optional

from sqlalchemy.orm import Session

from models.core import AuditEvent


def record_action(
    db: Session,
    hotel_id: int,
    entity_type: str,
    entity_id: int,
    action: str,
    usuario: str,
    descripcion: str,
    payload: Optional[dict] = None,
) -> AuditEvent:
    """
    Registra una acción en el audit trail dentro de la transacción en curso.
    No hace commit: la fila se persiste (o se descarta) junto con la operación.
    """
    evento = AuditEvent(
        hotel_id=hotel_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        usuario=usuario,
        descripcion=descripcion,
        payload=payload,
    )
    db.add(evento)
    return evento

"""
Dependencias comunes de los endpoints: hotel (tenant) y usuario que opera
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from database import conexion
from models.core import Hotel
from utils.logging_utils import log_event


# ========== TENANT ==========

def get_hotel_id(
    x_hotel_id: Optional[int] = Header(None, alias="X-Hotel-Id"),
    db: Session = Depends(conexion.get_db),
) -> int:
    """
    Obtiene el hotel del header X-Hotel-Id

    Raises:
        HTTPException: si falta el header o el hotel no existe
    """
    if x_hotel_id is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Header X-Hotel-Id requerido",
        )
    hotel = db.query(Hotel.id).filter(Hotel.id == x_hotel_id).first()
    if hotel is None:
        log_event("tenant", "sistema", "Hotel inexistente", f"hotel_id={x_hotel_id}")
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Hotel {x_hotel_id} no encontrado",
        )
    return x_hotel_id


# ========== USUARIO ==========

def get_usuario(x_user: Optional[str] = Header(None, alias="X-User")) -> str:
    """Usuario que opera (para logs y audit trail)"""
    if x_user and x_user.strip():
        return x_user.strip()[:50]
    return "sistema"

"""
Endpoints de habitaciones: inventario, estado operativo, estadísticas
y tareas de housekeeping
"""

from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query, status
from sqlalchemy.orm import Session

from database.conexion import get_db
from schemas.rooms import (
    DailyRateSet, HousekeepingTaskList, HousekeepingTaskRead, RoomCreate, RoomRead,
    RoomStatsResponse, RoomStatusUpdate, RoomTypeCreate, RoomTypeRead,
)
from services.errors import HotelError
from services.housekeeping import HousekeepingService
from services.room_state import RoomStateService, parse_room_status
from utils.dependencies import get_hotel_id, get_usuario
from utils.logging_utils import log_error


router = APIRouter(prefix="/api", tags=["Habitaciones"])


# ========================================================================
# INVENTARIO
# ========================================================================

@router.post("/rooms/types", response_model=RoomTypeRead, status_code=status.HTTP_201_CREATED)
def create_room_type(
    req: RoomTypeCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    return RoomStateService.create_room_type(db, hotel_id, req.name, req.base_rate, req.capacity)


@router.put("/rooms/types/{room_type_id}/rates", status_code=status.HTTP_200_OK)
def set_daily_rate(
    req: DailyRateSet,
    room_type_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    """Tarifa puntual para un día (temporada, feriado)"""
    rate = RoomStateService.set_daily_rate(db, hotel_id, room_type_id, req.rate_date, req.price)
    return {"room_type_id": room_type_id, "rate_date": rate.rate_date, "price": float(rate.price)}


@router.post("/rooms", response_model=RoomRead, status_code=status.HTTP_201_CREATED)
def create_room(
    req: RoomCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        return RoomStateService.create_room(db, hotel_id, req.room_number, req.room_type_id, req.floor, usuario)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("habitaciones", usuario, "Error al crear habitación", str(e))
        raise HTTPException(status_code=500, detail="Error interno al crear la habitación")


@router.get("/rooms", response_model=List[RoomRead])
def list_rooms(
    estado: Optional[str] = Query(None, alias="status"),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    if estado:
        parse_room_status(estado)
    return RoomStateService.list_rooms(db, hotel_id, estado)


@router.get("/rooms/stats", response_model=RoomStatsResponse)
def room_stats(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    return RoomStateService.compute_stats(db, hotel_id)


@router.patch("/rooms/{room_id}/status", response_model=RoomRead)
def set_room_status(
    req: RoomStatusUpdate,
    room_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Cambio manual de estado (mantenimiento, fuera de servicio, limpieza)"""
    try:
        return RoomStateService.set_status(
            db, hotel_id, room_id, req.status, usuario,
            guest_id=req.guest_id, reservation_room_id=req.reservation_room_id,
        )
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("habitaciones", usuario, "Error al cambiar estado", f"room_id={room_id}: {e}")
        raise HTTPException(status_code=500, detail="Error interno al cambiar el estado de la habitación")


# ========================================================================
# HOUSEKEEPING
# ========================================================================

@router.get("/housekeeping/tasks", response_model=HousekeepingTaskList)
def list_tasks(
    estado: Optional[str] = Query(None, alias="status"),
    task_date: Optional[date] = Query(None),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    tasks = HousekeepingService.list_tasks(db, hotel_id, estado, task_date)
    return {"tasks": tasks, "total": len(tasks)}


@router.post("/housekeeping/tasks/{task_id}/complete", response_model=HousekeepingTaskRead)
def complete_task(
    task_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return HousekeepingService.complete_task(db, hotel_id, task_id, usuario)

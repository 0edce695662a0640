"""
Endpoints del ciclo de vida de reservas:
alta, asignación, check-in, check-out, cambio de habitación, cancelación y no-show.
"""

from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from database.conexion import get_db
from schemas.reservations import (
    AssignRoomsRequest, CancelRequest, CheckInRequest, CheckoutResponse, MoveRoomRequest,
    ReservationCreate, ReservationRead, SegmentRead,
)
from services.errors import HotelError
from services.reservations import ReservationService
from utils.dependencies import get_hotel_id, get_usuario
from utils.logging_utils import log_error


router = APIRouter(prefix="/api/reservations", tags=["Reservas"])


@router.post("", response_model=ReservationRead, status_code=status.HTTP_201_CREATED)
def create_reservation(
    req: ReservationCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        return ReservationService.create_reservation(
            db, hotel_id,
            guest_id=req.guest_id,
            check_in_date=req.check_in_date,
            check_out_date=req.check_out_date,
            segments=[segment.model_dump() for segment in req.segments],
            usuario=usuario,
            total_amount=req.total_amount,
            corporate_account_id=req.corporate_account_id,
            notes=req.notes,
        )
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("reservas", usuario, "Error al crear reserva", str(e))
        raise HTTPException(status_code=500, detail="Error interno al crear la reserva")


@router.get("/no-show-candidates", response_model=List[ReservationRead])
def no_show_candidates(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    """Reservas confirmadas cuya llegada ya venció sin check-in"""
    return ReservationService.no_show_candidates(db, hotel_id)


@router.get("/{reservation_id}", response_model=ReservationRead)
def get_reservation(
    reservation_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    return ReservationService.get_reservation(db, hotel_id, reservation_id)


@router.post("/{reservation_id}/assign-rooms", response_model=ReservationRead)
def assign_rooms(
    req: AssignRoomsRequest,
    reservation_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    assignments = [a.model_dump() for a in req.assignments]
    return ReservationService.assign_rooms(db, hotel_id, reservation_id, assignments, usuario)


# ========================================================================
# CHECK-IN / CHECK-OUT
# ========================================================================

@router.post("/{reservation_id}/check-in", response_model=ReservationRead)
def check_in(
    req: CheckInRequest,
    reservation_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Check-in todo o nada: si una habitación no está disponible no se ocupa ninguna"""
    try:
        assignments = [a.model_dump() for a in req.assignments]
        return ReservationService.check_in(db, hotel_id, reservation_id, assignments, usuario)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("reservas", usuario, "Error en check-in", f"id={reservation_id}: {e}")
        raise HTTPException(status_code=500, detail="Error interno en el check-in")


@router.post("/{reservation_id}/check-out", response_model=CheckoutResponse)
def check_out(
    reservation_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        result = ReservationService.check_out(db, hotel_id, reservation_id, usuario)
        return asdict(result)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("reservas", usuario, "Error en check-out", f"id={reservation_id}: {e}")
        raise HTTPException(status_code=500, detail="Error interno en el check-out")


@router.post("/segments/{reservation_room_id}/move", response_model=SegmentRead)
def move_to_room(
    req: MoveRoomRequest,
    reservation_room_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return ReservationService.move_to_room(db, hotel_id, reservation_room_id, req.new_room_id, usuario, req.reason)


# ========================================================================
# CANCELACIÓN / NO-SHOW
# ========================================================================

@router.post("/{reservation_id}/cancel", response_model=ReservationRead)
def cancel(
    req: CancelRequest,
    reservation_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return ReservationService.cancel(db, hotel_id, reservation_id, usuario, req.reason)


@router.post("/{reservation_id}/no-show", response_model=ReservationRead)
def mark_no_show(
    reservation_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return ReservationService.mark_no_show(db, hotel_id, reservation_id, usuario)

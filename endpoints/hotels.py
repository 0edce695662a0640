"""
Endpoints de alta de hoteles, configuración, fecha operativa, huéspedes
y cuentas corporativas
"""

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from database.conexion import get_db
from schemas.hotels import (
    BusinessDateRead, CorporateAccountCreate, CorporateAccountRead, GuestCreate, GuestRead,
    HotelCreate, HotelRead, HotelSettingsRead, HotelSettingsUpdate,
)
from services.business_date import BusinessDateService
from services.errors import HotelError
from services.hotels import HotelService
from utils.dependencies import get_hotel_id, get_usuario
from utils.logging_utils import log_error, log_event


router = APIRouter(prefix="/api", tags=["Hoteles"])


# ========================================================================
# HOTELES
# ========================================================================

@router.post("/hotels", response_model=HotelRead, status_code=status.HTTP_201_CREATED)
def create_hotel(
    req: HotelCreate,
    db: Session = Depends(get_db),
    usuario: str = Depends(get_usuario),
):
    """Alta de hotel con su configuración y fecha operativa inicial"""
    try:
        return HotelService.create_hotel(db, usuario=usuario, **req.model_dump())
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("hoteles", usuario, "Error al crear hotel", str(e))
        raise HTTPException(status_code=500, detail="Error interno al crear el hotel")


@router.get("/hotels/{hotel_id}/business-date", response_model=BusinessDateRead)
def get_business_date(hotel_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return BusinessDateService.get(db, hotel_id)


@router.get("/hotels/{hotel_id}/settings", response_model=HotelSettingsRead)
def get_settings(hotel_id: int = Path(..., gt=0), db: Session = Depends(get_db)):
    return HotelService.get_settings(db, hotel_id)


@router.patch("/hotels/{hotel_id}/settings", response_model=HotelSettingsRead)
def update_settings(
    req: HotelSettingsUpdate,
    hotel_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    usuario: str = Depends(get_usuario),
):
    changes = req.model_dump(exclude_unset=True)
    if not changes:
        raise HTTPException(status_code=400, detail="Se requiere al menos un campo para actualizar")
    try:
        return HotelService.update_settings(db, hotel_id, usuario=usuario, **changes)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("hoteles", usuario, "Error al actualizar configuración", str(e))
        raise HTTPException(status_code=500, detail="Error interno al actualizar la configuración")


# ========================================================================
# HUÉSPEDES Y CUENTAS CORPORATIVAS
# ========================================================================

@router.post("/guests", response_model=GuestRead, status_code=status.HTTP_201_CREATED)
def create_guest(
    req: GuestCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    guest = HotelService.create_guest(db, hotel_id, req.first_name, req.last_name, req.email, req.phone)
    log_event("huespedes", usuario, "Alta huésped", f"id={guest.id} hotel={hotel_id}")
    return guest


@router.post("/corporate-accounts", response_model=CorporateAccountRead, status_code=status.HTTP_201_CREATED)
def create_corporate_account(
    req: CorporateAccountCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    account = HotelService.create_corporate_account(db, hotel_id, req.name, req.contact_email)
    log_event("empresas", usuario, "Alta cuenta corporativa", f"id={account.id} hotel={hotel_id}")
    return account

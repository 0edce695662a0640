"""
Endpoints del libro de folios: cargos, ajustes, anulaciones, transferencias,
división de folios, pagos (simples y múltiples),
cierre y consumos de punto de venta.
"""

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.orm import Session

from database.conexion import get_db
from models.folio import Folio
from schemas.folios import (
    AdjustmentCreate, BulkPaymentCreate, BulkPaymentResponse, CloseFolioRequest, FolioCreate, FolioRead,
    FolioStatsResponse, LineItemCreate, LineItemRead, OutstandingFoliosResponse, PaymentCreate,
    PaymentRead, PaymentResponse, PosOrderCreate, PosOrderRead, ReopenFolioRequest, SplitFolioRequest,
    TransferRequest, VoidRequest,
)
from services.errors import HotelError
from services.folio_ledger import FolioService, folio_snapshot
from utils.dependencies import get_hotel_id, get_usuario
from utils.logging_utils import log_error


router = APIRouter(prefix="/api/folios", tags=["Folios"])


def _folio_response(folio: Folio) -> dict:
    data = folio_snapshot(folio)
    data.pop("folio_id")
    data.update({
        "id": folio.id,
        "reservation_id": folio.reservation_id,
        "corporate_account_id": folio.corporate_account_id,
        "guest_id": folio.guest_id,
        "closed_at": folio.closed_at,
        "closed_by": folio.closed_by,
        "line_items": folio.line_items,
        "payments": folio.payments,
    })
    return data


# ========================================================================
# CONSULTAS
# ========================================================================

@router.get("/outstanding", response_model=OutstandingFoliosResponse)
def outstanding_folios(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    """Folios abiertos con saldo pendiente"""
    folios = FolioService.outstanding_folios(db, hotel_id)
    return {
        "folios": folios,
        "total_balance": sum((f["balance"] for f in folios), Decimal("0.00")),
    }


@router.get("/stats", response_model=FolioStatsResponse)
def folio_stats(db: Session = Depends(get_db), hotel_id: int = Depends(get_hotel_id)):
    return FolioService.folio_stats(db, hotel_id)


@router.get("/{folio_id}", response_model=FolioRead)
def get_folio(
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
):
    return _folio_response(FolioService.get_folio(db, hotel_id, folio_id))


@router.post("", response_model=FolioRead, status_code=status.HTTP_201_CREATED)
def open_folio(
    req: FolioCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    folio = FolioService.open_folio(
        db, hotel_id, usuario,
        reservation_id=req.reservation_id,
        corporate_account_id=req.corporate_account_id,
        notes=req.notes,
    )
    return _folio_response(folio)


# ========================================================================
# CARGOS
# ========================================================================

@router.post("/{folio_id}/items", response_model=LineItemRead, status_code=status.HTTP_201_CREATED)
def add_line_item(
    req: LineItemCreate,
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        return FolioService.add_line_item(
            db, hotel_id, folio_id, req.category, req.unit_price, usuario,
            quantity=req.quantity, description=req.description, service_date=req.service_date,
        )
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("folios", usuario, "Error al agregar cargo", f"folio={folio_id}: {e}")
        raise HTTPException(status_code=500, detail="Error interno al agregar el cargo")


@router.post("/items/{item_id}/void", response_model=LineItemRead)
def void_line_item(
    req: VoidRequest,
    item_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return FolioService.void_line_item(db, hotel_id, item_id, req.reason, usuario)


@router.post("/items/{item_id}/transfer", response_model=LineItemRead)
def transfer_line_item(
    req: TransferRequest,
    item_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return FolioService.transfer_line_item(db, hotel_id, item_id, req.target_folio_id, usuario)


@router.post("/{folio_id}/adjustments", response_model=LineItemRead, status_code=status.HTTP_201_CREATED)
def add_adjustment(
    req: AdjustmentCreate,
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Ajuste o descuento manual (sin impuesto)"""
    return FolioService.add_adjustment(
        db, hotel_id, folio_id, req.amount, req.reason, usuario, is_discount=req.is_discount,
    )


@router.post("/{folio_id}/split", response_model=FolioRead, status_code=status.HTTP_201_CREATED)
def split_folio(
    req: SplitFolioRequest,
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Mueve los cargos indicados a un folio nuevo; devuelve el folio nuevo"""
    try:
        folio = FolioService.split_folio(db, hotel_id, folio_id, req.item_ids, usuario, notes=req.notes)
        return _folio_response(folio)
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("folios", usuario, "Error al dividir folio", f"folio={folio_id}: {e}")
        raise HTTPException(status_code=500, detail="Error interno al dividir el folio")


# ========================================================================
# PAGOS
# ========================================================================

@router.post("/{folio_id}/payments", response_model=PaymentResponse, status_code=status.HTTP_201_CREATED)
def record_payment(
    req: PaymentCreate,
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    try:
        payment, warnings = FolioService.record_payment(
            db, hotel_id, folio_id, req.amount, req.method, usuario,
            reference=req.reference, notes=req.notes,
        )
        return {
            "payment": payment,
            "balance": FolioService.balance(db, hotel_id, folio_id),
            "warnings": warnings,
        }
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("folios", usuario, "Error al registrar pago", f"folio={folio_id}: {e}")
        raise HTTPException(status_code=500, detail="Error interno al registrar el pago")


@router.post("/bulk-payments", response_model=BulkPaymentResponse, status_code=status.HTTP_201_CREATED)
def bulk_payment(
    req: BulkPaymentCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Reparte un pago entre varios folios con saldo, en el orden indicado"""
    try:
        payments, warnings = FolioService.bulk_payment(
            db, hotel_id, req.folio_ids, req.total_amount, req.method, usuario,
            reference=req.reference, notes=req.notes,
        )
        return {"payments": payments, "warnings": warnings}
    except (HTTPException, HotelError):
        raise
    except Exception as e:
        log_error("folios", usuario, "Error en pago múltiple", f"folios={req.folio_ids}: {e}")
        raise HTTPException(status_code=500, detail="Error interno al registrar el pago múltiple")


@router.post("/payments/{payment_id}/void", response_model=PaymentRead)
def void_payment(
    req: VoidRequest,
    payment_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return FolioService.void_payment(db, hotel_id, payment_id, req.reason, usuario)


# ========================================================================
# CIERRE
# ========================================================================

@router.post("/{folio_id}/close", response_model=FolioRead)
def close_folio(
    req: CloseFolioRequest,
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    folio = FolioService.close_folio(db, hotel_id, folio_id, usuario, write_off=req.write_off, reason=req.reason)
    return _folio_response(folio)


@router.post("/{folio_id}/reopen", response_model=FolioRead)
def reopen_folio(
    req: ReopenFolioRequest,
    folio_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    folio = FolioService.reopen_folio(db, hotel_id, folio_id, usuario, reason=req.reason)
    return _folio_response(folio)


# ========================================================================
# PUNTO DE VENTA
# ========================================================================

@router.post("/pos-orders", response_model=PosOrderRead, status_code=status.HTTP_201_CREATED)
def create_pos_order(
    req: PosOrderCreate,
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    return FolioService.create_pos_order(
        db, hotel_id, req.folio_id, req.description, req.amount, outlet=req.outlet, usuario=usuario,
    )


@router.post("/pos-orders/{order_id}/post", response_model=LineItemRead)
def post_pos_order(
    order_id: int = Path(..., gt=0),
    db: Session = Depends(get_db),
    hotel_id: int = Depends(get_hotel_id),
    usuario: str = Depends(get_usuario),
):
    """Carga el consumo al folio; repetir la llamada no duplica el cargo"""
    return FolioService.post_pos_order(db, hotel_id, order_id, usuario)

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ========================================================================
# REQUESTS
# ========================================================================

class FolioCreate(BaseModel):
    reservation_id: Optional[int] = Field(None, gt=0)
    corporate_account_id: Optional[int] = Field(None, gt=0)
    notes: Optional[str] = None


class LineItemCreate(BaseModel):
    category: str = Field(..., description="room | tax | service_charge | food_beverage | other")
    unit_price: Decimal
    quantity: Decimal = Field(Decimal("1"), gt=0)
    description: Optional[str] = Field(None, max_length=200)
    service_date: Optional[date] = None


class VoidRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class TransferRequest(BaseModel):
    target_folio_id: int = Field(..., gt=0)


class PaymentCreate(BaseModel):
    amount: Decimal = Field(..., description="Debe ser mayor a cero")
    method: str = Field(..., description="cash | credit_card | debit_card | bank_transfer | mobile_payment | corporate_billing | other")
    reference: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = None


class AdjustmentCreate(BaseModel):
    amount: Decimal = Field(..., description="Negativo baja el saldo; con is_discount siempre se aplica negativo")
    reason: str = Field(..., min_length=1, max_length=500)
    is_discount: bool = False


class SplitFolioRequest(BaseModel):
    item_ids: List[int] = Field(..., min_length=1)
    notes: Optional[str] = None


class BulkPaymentCreate(BaseModel):
    folio_ids: List[int] = Field(..., min_length=1)
    total_amount: Decimal = Field(..., description="Se reparte en el orden de folio_ids")
    method: str
    reference: Optional[str] = Field(None, max_length=120)
    notes: Optional[str] = None


class CloseFolioRequest(BaseModel):
    write_off: bool = False
    reason: Optional[str] = Field(None, max_length=500)


class ReopenFolioRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PosOrderCreate(BaseModel):
    folio_id: int = Field(..., gt=0)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal
    outlet: str = Field("restaurant", max_length=40)


# ========================================================================
# RESPONSES
# ========================================================================

class LineItemRead(BaseModel):
    id: int
    folio_id: int
    category: str
    description: Optional[str] = None
    quantity: float
    unit_price: float
    amount: float
    tax_amount: float
    service_charge_amount: float
    service_date: date
    room_id: Optional[int] = None
    posting_key: Optional[str] = None
    transferred_from_folio_id: Optional[int] = None
    voided: bool
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    created_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentRead(BaseModel):
    id: int
    folio_id: int
    amount: float
    method: str
    reference: Optional[str] = None
    business_date: date
    voided: bool
    voided_at: Optional[datetime] = None
    void_reason: Optional[str] = None
    created_by: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentResponse(BaseModel):
    payment: PaymentRead
    balance: float
    warnings: List[str]


class BulkPaymentResponse(BaseModel):
    payments: List[PaymentRead]
    warnings: List[str]


class FolioRead(BaseModel):
    id: int
    folio_number: str
    reservation_id: Optional[int] = None
    corporate_account_id: Optional[int] = None
    guest_id: Optional[int] = None
    status: str
    closed_at: Optional[datetime] = None
    closed_by: Optional[str] = None
    subtotal: float
    tax_amount: float
    service_charge: float
    total_amount: float
    paid_amount: float
    balance: float
    line_items: List[LineItemRead] = []
    payments: List[PaymentRead] = []


class OutstandingFolio(BaseModel):
    folio_id: int
    folio_number: str
    holder: Optional[str] = None
    room_number: Optional[str] = None
    reservation_status: Optional[str] = None
    total_amount: float
    paid_amount: float
    balance: float


class OutstandingFoliosResponse(BaseModel):
    folios: List[OutstandingFolio]
    total_balance: float


class PosOrderRead(BaseModel):
    id: int
    folio_id: int
    outlet: str
    description: str
    amount: float
    status: str
    line_item_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class FolioStatsResponse(BaseModel):
    open_folios: int
    closed_folios: int
    outstanding_balance: float
    payments_today: Dict[str, float]

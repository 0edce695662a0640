from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SegmentCreate(BaseModel):
    room_type_id: int = Field(..., gt=0)
    room_id: Optional[int] = Field(None, gt=0, description="Pre-asignación opcional")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    rate_per_night: Optional[Decimal] = Field(None, ge=0)


class ReservationCreate(BaseModel):
    guest_id: int = Field(..., gt=0)
    check_in_date: date
    check_out_date: date
    segments: List[SegmentCreate] = Field(..., min_length=1)
    total_amount: Optional[Decimal] = Field(None, ge=0)
    corporate_account_id: Optional[int] = Field(None, gt=0)
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validar_fechas(self):
        if self.check_out_date <= self.check_in_date:
            raise ValueError("check_out_date debe ser posterior a check_in_date")
        return self


class RoomAssignment(BaseModel):
    reservation_room_id: int = Field(..., gt=0)
    room_id: int = Field(..., gt=0)


class AssignRoomsRequest(BaseModel):
    assignments: List[RoomAssignment] = Field(..., min_length=1)


class CheckInRequest(BaseModel):
    assignments: List[RoomAssignment] = Field(default_factory=list)


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class MoveRoomRequest(BaseModel):
    new_room_id: int = Field(..., gt=0)
    reason: Optional[str] = Field(None, max_length=500)


class SegmentRead(BaseModel):
    id: int
    room_type_id: int
    room_id: Optional[int] = None
    start_date: date
    end_date: date
    rate_per_night: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)


class ReservationRead(BaseModel):
    id: int
    confirmation_number: str
    guest_id: int
    corporate_account_id: Optional[int] = None
    status: str
    check_in_date: date
    check_out_date: date
    total_amount: float
    notes: Optional[str] = None
    actual_check_in: Optional[datetime] = None
    actual_check_out: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None
    rooms: List[SegmentRead] = []

    model_config = ConfigDict(from_attributes=True)


class FolioTotals(BaseModel):
    folio_id: int
    folio_number: str
    status: str
    subtotal: float
    tax_amount: float
    service_charge: float
    total_amount: float
    paid_amount: float
    balance: float


class CheckoutResponse(BaseModel):
    reservation_id: int
    confirmation_number: str
    folio: Optional[FolioTotals] = None
    folio_closed: bool
    released_room_ids: List[int]
    housekeeping_task_ids: List[int]
    warnings: List[str]

from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class RoomTypeCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=60)
    base_rate: Optional[Decimal] = Field(None, ge=0, description="Tarifa base por noche")
    capacity: int = Field(2, ge=1)


class RoomTypeRead(BaseModel):
    id: int
    name: str
    base_rate: Optional[float] = None
    capacity: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class DailyRateSet(BaseModel):
    rate_date: date
    price: Decimal = Field(..., ge=0)


class RoomCreate(BaseModel):
    room_number: str = Field(..., min_length=1, max_length=10)
    room_type_id: int = Field(..., gt=0)
    floor: Optional[int] = Field(None, ge=0)


class RoomStatusUpdate(BaseModel):
    status: str = Field(..., description="vacant | occupied | dirty | maintenance | out_of_order")
    guest_id: Optional[int] = Field(None, gt=0)
    reservation_room_id: Optional[int] = Field(None, gt=0)


class RoomRead(BaseModel):
    id: int
    room_number: str
    floor: Optional[int] = None
    room_type_id: int
    status: str
    current_guest_id: Optional[int] = None
    current_reservation_room_id: Optional[int] = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class RoomStatsResponse(BaseModel):
    total: int
    by_status: Dict[str, int]
    occupancy_rate: float


class HousekeepingTaskRead(BaseModel):
    id: int
    room_id: int
    reservation_id: Optional[int] = None
    task_date: date
    task_type: str
    status: str
    priority: str
    notes: Optional[str] = None
    done_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class HousekeepingTaskList(BaseModel):
    tasks: List[HousekeepingTaskRead]
    total: int

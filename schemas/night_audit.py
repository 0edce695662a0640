from datetime import date, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class NightAuditRead(BaseModel):
    id: Optional[int] = None
    business_date: date
    status: str
    phase: str
    version: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    run_by: Optional[str] = None
    notes: Optional[str] = None
    rooms_to_charge: int = 0
    rooms_charged: int = 0
    total_room_revenue: Optional[float] = None
    total_fb_revenue: Optional[float] = None
    total_other_revenue: Optional[float] = None
    total_revenue: Optional[float] = None
    total_payments: Optional[float] = None
    occupied_rooms: Optional[int] = None
    occupancy_rate: Optional[float] = None
    adr: Optional[float] = None
    revpar: Optional[float] = None
    report_data: Optional[Dict[str, Any]] = None

    model_config = ConfigDict(from_attributes=True)


class ChecklistItem(BaseModel):
    key: str
    label: str
    count: int
    complete: bool
    references: List[int]


class ChecklistResponse(BaseModel):
    business_date: date
    ready: bool
    items: List[ChecklistItem]


class PostingRequest(BaseModel):
    posting_token: Optional[str] = Field(None, max_length=64)


class PostingException(BaseModel):
    room_id: int
    room_number: Optional[str] = None
    reason: str


class PostingResponse(BaseModel):
    audit_id: int
    business_date: date
    phase: str
    posted: int
    already_posted: int
    total: int
    exceptions: List[PostingException]
    posting_token: Optional[str] = None


class PostingProgress(BaseModel):
    audit_id: Optional[int] = None
    business_date: date
    phase: str
    status: str
    posted: int
    total: int
    pending: int


class CompleteAuditRequest(BaseModel):
    notes: Optional[str] = Field(None, max_length=1000)


class AuditStatisticsResponse(BaseModel):
    business_date: date
    total_rooms: int
    occupied_rooms: int
    vacant_rooms: int
    occupancy_rate: float
    room_revenue: float
    fb_revenue: float
    other_revenue: float
    total_revenue: float
    total_tax: float
    total_service_charge: float
    total_payments: float
    adr: float
    revpar: float
    arrivals: int
    departures: int
    stayovers: int
    no_shows: int


class AuditHistoryRead(BaseModel):
    id: int
    night_audit_id: int
    business_date: date
    total_rooms: int
    occupied_rooms: int
    occupancy_rate: float
    room_revenue: float
    fb_revenue: float
    other_revenue: float
    total_revenue: float
    total_payments: float
    adr: float
    revpar: float
    outstanding_folios: int
    run_by: Optional[str] = None
    completed_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TrendPoint(BaseModel):
    business_date: date
    value: Optional[float] = None


class TrendResponse(BaseModel):
    metric: str
    points: List[TrendPoint]

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class HotelCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    code: str = Field(..., min_length=1, max_length=20, description="Código único del hotel")
    business_date: Optional[date] = Field(None, description="Fecha operativa inicial (default: hoy local)")
    timezone: Optional[str] = Field(None, max_length=50)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    service_charge_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    allow_checkout_with_balance: Optional[bool] = None
    allow_audit_with_outstanding_folios: Optional[bool] = None


class HotelSettingsUpdate(BaseModel):
    timezone: Optional[str] = Field(None, max_length=50)
    tax_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    service_charge_rate: Optional[Decimal] = Field(None, ge=0, le=100)
    allow_checkout_with_balance: Optional[bool] = None
    allow_audit_with_outstanding_folios: Optional[bool] = None


class HotelSettingsRead(BaseModel):
    timezone: str
    tax_rate: float
    service_charge_rate: float
    allow_checkout_with_balance: bool
    allow_audit_with_outstanding_folios: bool

    model_config = ConfigDict(from_attributes=True)


class HotelRead(BaseModel):
    id: int
    name: str
    code: str

    model_config = ConfigDict(from_attributes=True)


class BusinessDateRead(BaseModel):
    hotel_id: int
    current_date: date
    version: int

    model_config = ConfigDict(from_attributes=True)


class GuestCreate(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=60)
    last_name: str = Field(..., min_length=1, max_length=60)
    email: Optional[str] = Field(None, max_length=120)
    phone: Optional[str] = Field(None, max_length=30)


class GuestRead(BaseModel):
    id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    phone: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class CorporateAccountCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    contact_email: Optional[str] = Field(None, max_length=120)


class CorporateAccountRead(BaseModel):
    id: int
    name: str
    contact_email: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

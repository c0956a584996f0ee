from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from ..services.clock import to_naive_utc


class CustomerBase(BaseModel):
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None

    @field_validator('email', 'phone', 'address', 'notes', mode='before')
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @field_validator('name')
    @classmethod
    def name_required(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("name is required")
        return v


class CustomerCreate(CustomerBase):
    pass


class CustomerUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None


class CustomerResponse(CustomerBase):
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class EquipmentTypeCreate(BaseModel):
    name: str
    brand: Optional[str] = None
    model: Optional[str] = None


class EquipmentTypeResponse(EquipmentTypeCreate):
    id: int

    class Config:
        from_attributes = True


class EquipmentCreate(BaseModel):
    serial_number: str
    type_id: int
    customer_id: int
    purchase_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator('purchase_date')
    @classmethod
    def purchase_date_to_utc(cls, v):
        return to_naive_utc(v)


class EquipmentUpdate(BaseModel):
    serial_number: Optional[str] = None
    type_id: Optional[int] = None
    customer_id: Optional[int] = None
    purchase_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator('purchase_date')
    @classmethod
    def purchase_date_to_utc(cls, v):
        return to_naive_utc(v)


class EquipmentResponse(EquipmentCreate):
    id: int
    equipment_type: Optional[EquipmentTypeResponse] = None

    class Config:
        from_attributes = True

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..models.enums import OrderStatus
from ..services.clock import to_naive_utc


class OrderItemBase(BaseModel):
    item_name: str
    item_type: str = "part"  # part|machine|accessory|service|consumable
    quantity: int = Field(1, ge=1)
    # Money in pence
    unit_price: Optional[int] = None
    price_excluding_vat: Optional[int] = None
    price_including_vat: Optional[int] = None
    total_price: Optional[int] = None
    notes: Optional[str] = None


class OrderItemCreate(OrderItemBase):
    pass


class OrderItemUpdate(BaseModel):
    item_name: Optional[str] = None
    item_type: Optional[str] = None
    quantity: Optional[int] = Field(None, ge=1)
    unit_price: Optional[int] = None
    price_excluding_vat: Optional[int] = None
    price_including_vat: Optional[int] = None
    total_price: Optional[int] = None
    notes: Optional[str] = None


class OrderItemResponse(OrderItemBase):
    id: int
    order_id: int
    price_display: Optional[str] = None

    class Config:
        from_attributes = True


class OrderBase(BaseModel):
    customer_id: Optional[int] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    supplier_name: Optional[str] = None
    supplier_email: Optional[str] = None
    supplier_phone: Optional[str] = None
    tracking_number: Optional[str] = None
    expected_delivery_date: Optional[datetime] = None
    estimated_total_cost: Optional[int] = None
    actual_total_cost: Optional[int] = None
    deposit_amount: Optional[int] = None
    notify_on_status_change: Optional[bool] = None
    notify_on_arrival: Optional[bool] = None
    notes: Optional[str] = None
    related_job_id: Optional[int] = None

    @field_validator("expected_delivery_date")
    @classmethod
    def delivery_date_to_utc(cls, v):
        return to_naive_utc(v)


class OrderCreate(OrderBase):
    status: Optional[str] = None
    items: List[OrderItemCreate] = []


class OrderUpdate(OrderBase):
    status: Optional[str] = None


class OrderStatusChange(BaseModel):
    status: str
    notify_on_arrival: Optional[bool] = None


class OrderTotal(BaseModel):
    amount: Optional[int] = None
    source: Optional[str] = None  # actual|estimated
    display: Optional[str] = None


class OrderStatusHistoryResponse(BaseModel):
    id: int
    previous_status: Optional[str] = None
    new_status: str
    changed_by: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True


class OrderResponse(OrderBase):
    id: int
    order_number: str
    customer_name: str
    status: OrderStatus
    created_by: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    total: Optional[OrderTotal] = None
    items: List[OrderItemResponse] = []
    history: List[OrderStatusHistoryResponse] = []

    class Config:
        from_attributes = True

from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from ..models.enums import CallbackStatus, Priority


class CallbackCreate(BaseModel):
    # Required fields are checked by the service so missing ones are reported together
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    subject: Optional[str] = None
    details: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[int] = None
    customer_id: Optional[int] = None
    notes: Optional[str] = None


class CallbackUpdate(BaseModel):
    customer_name: Optional[str] = None
    phone_number: Optional[str] = None
    subject: Optional[str] = None
    details: Optional[str] = None
    priority: Optional[str] = None
    assigned_to: Optional[int] = None
    customer_id: Optional[int] = None
    notes: Optional[str] = None


class CallbackComplete(BaseModel):
    notes: Optional[str] = None


class CallbackResponse(BaseModel):
    id: int
    customer_id: Optional[int] = None
    customer_name: str
    phone_number: str
    subject: str
    details: Optional[str] = None
    priority: Priority
    assigned_to: Optional[int] = None
    status: CallbackStatus
    related_task_id: Optional[int] = None
    requested_at: datetime
    completed_at: Optional[datetime] = None
    notes: Optional[str] = None
    deleted_at: Optional[datetime] = None
    delete_expires_at: Optional[datetime] = None
    version: int

    class Config:
        from_attributes = True


class PurgeResult(BaseModel):
    purged: int

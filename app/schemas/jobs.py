from datetime import datetime
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, field_validator

from ..models.enums import JobStatus
from ..services.clock import to_naive_utc


class JobCreate(BaseModel):
    customer_id: int
    description: str
    equipment_id: Optional[int] = None
    assigned_to: Optional[int] = None
    status: Optional[str] = None
    estimated_hours: Optional[int] = None
    actual_hours: Optional[int] = None
    customer_notified: bool = False


class JobUpdateFields(BaseModel):
    customer_id: Optional[int] = None
    description: Optional[str] = None
    equipment_id: Optional[int] = None
    assigned_to: Optional[int] = None
    status: Optional[str] = None
    estimated_hours: Optional[int] = None
    actual_hours: Optional[int] = None
    customer_notified: Optional[bool] = None


class JobStatusChange(BaseModel):
    status: str
    note: Optional[str] = None
    is_public: bool = True


class JobResponse(BaseModel):
    id: int
    job_code: str
    customer_id: int
    equipment_id: Optional[int] = None
    assigned_to: Optional[int] = None
    description: str
    status: JobStatus
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_hours: Optional[int] = None
    actual_hours: Optional[int] = None
    customer_notified: bool
    version: int

    class Config:
        from_attributes = True


class JobDetailResponse(JobResponse):
    status_entry_time: Optional[datetime] = None
    time_in_status_days: Optional[float] = None


class JobNoteCreate(BaseModel):
    note: str
    is_public: bool = True


class JobNoteResponse(BaseModel):
    id: int
    job_id: int
    note: str
    created_by: Optional[int] = None
    created_at: datetime
    is_public: bool

    class Config:
        from_attributes = True


class ServiceRecordCreate(BaseModel):
    service_type: Optional[str] = None
    details: Optional[str] = None
    performed_by: Optional[int] = None
    performed_at: Optional[datetime] = None
    parts_used: Optional[List[Dict[str, Any]]] = None
    cost: Optional[int] = None
    labor_hours: Optional[int] = None
    notes: Optional[str] = None

    @field_validator("performed_at")
    @classmethod
    def performed_at_to_utc(cls, v):
        return to_naive_utc(v)


class ServiceRecordResponse(ServiceRecordCreate):
    id: int
    job_id: int
    service_type: str
    performed_at: datetime

    class Config:
        from_attributes = True

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator

from ..models.enums import Priority, TaskStatus
from ..services.clock import to_naive_utc


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    priority: Optional[str] = None
    # Legacy spellings (todo, done, in progress ...) are accepted
    status: Optional[str] = None
    assigned_to: Optional[int] = None
    due_date: Optional[datetime] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None

    @field_validator("due_date")
    @classmethod
    def due_date_to_utc(cls, v):
        return to_naive_utc(v)


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    assigned_to: Optional[int] = None
    due_date: Optional[datetime] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None

    @field_validator("due_date")
    @classmethod
    def due_date_to_utc(cls, v):
        return to_naive_utc(v)


class TaskStatusChange(BaseModel):
    status: str


class TaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    priority: Priority
    status: TaskStatus
    assigned_to: Optional[int] = None
    due_date: Optional[datetime] = None
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    version: int

    class Config:
        from_attributes = True

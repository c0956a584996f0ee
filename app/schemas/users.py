from datetime import datetime
from typing import Optional
from pydantic import BaseModel

from ..models.enums import UserRole


class UserCreate(BaseModel):
    username: str
    full_name: str
    email: Optional[str] = None
    role: UserRole = UserRole.STAFF


class UserResponse(BaseModel):
    id: int
    username: str
    full_name: str
    email: Optional[str] = None
    role: UserRole
    is_active: bool
    task_notifications: Optional[bool] = None
    job_notifications: Optional[bool] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationPreferences(BaseModel):
    task_notifications: Optional[bool] = None
    job_notifications: Optional[bool] = None

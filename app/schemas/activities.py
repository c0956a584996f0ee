from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field


class ActivityResponse(BaseModel):
    id: int
    user_id: Optional[int] = None
    activity_type: str
    description: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="metadata_json")

    class Config:
        from_attributes = True

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.activities import ActivityResponse
from ..services import activity


router = APIRouter(prefix="/activities", tags=["activities"])


@router.get("", response_model=List[ActivityResponse])
def recent_activities(
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return activity.get_recent_activities(db, limit=limit, offset=offset)


@router.get("/entity/{entity_type}/{entity_id}", response_model=List[ActivityResponse])
def entity_activities(entity_type: str, entity_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return activity.get_activities_for_entity(db, entity_type, entity_id)


@router.get("/user/{user_id}", response_model=List[ActivityResponse])
def user_activities(
    user_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return activity.get_activities_for_user(db, user_id, limit=limit)

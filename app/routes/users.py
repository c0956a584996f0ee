from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_roles, require_self_or_admin
from ..errors import NotFoundError, ValidationError
from ..models.enums import UserRole
from ..models.models import User
from ..schemas.users import UserCreate, UserResponse, NotificationPreferences
from ..services.clock import Clock, get_clock


router = APIRouter(prefix="/users", tags=["users"])


def _get_user(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise NotFoundError("User", user_id)
    return user


@router.get("", response_model=List[UserResponse])
def list_staff(include_inactive: bool = False, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    query = db.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.full_name.asc(), User.id.asc()).all()


@router.post("", response_model=UserResponse, status_code=201)
def create_staff(
    payload: UserCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(require_roles(UserRole.ADMIN)),
):
    username = payload.username.strip().lower()
    if not username:
        raise ValidationError("username is required", fields={"username": "required"})
    if db.query(User).filter(User.username == username).first():
        raise ValidationError("Username already taken", fields={"username": "already exists"})
    user = User(
        username=username,
        full_name=payload.full_name.strip() or username,
        email=payload.email,
        role=payload.role,
        created_at=clock(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.get("/{user_id}", response_model=UserResponse)
def get_staff(user_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return _get_user(db, user_id)


@router.get("/{user_id}/notification-preferences", response_model=NotificationPreferences)
def get_notification_preferences(user_id: int, db: Session = Depends(get_db), _: User = Depends(require_self_or_admin)):
    user = _get_user(db, user_id)
    return NotificationPreferences(task_notifications=user.task_notifications, job_notifications=user.job_notifications)


@router.put("/{user_id}/notification-preferences", response_model=NotificationPreferences)
def update_notification_preferences(
    user_id: int,
    payload: NotificationPreferences,
    db: Session = Depends(get_db),
    _: User = Depends(require_self_or_admin),
):
    user = _get_user(db, user_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(user, field, value)
    db.commit()
    db.refresh(user)
    return NotificationPreferences(task_notifications=user.task_notifications, job_notifications=user.job_notifications)

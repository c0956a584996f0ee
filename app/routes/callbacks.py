from datetime import datetime
from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user, require_roles
from ..models.enums import CallbackStatus
from ..models.models import User
from ..errors import ValidationError
from ..schemas.callbacks import CallbackCreate, CallbackUpdate, CallbackComplete, CallbackResponse, PurgeResult
from ..services import callback_service
from ..services.clock import Clock, get_clock, to_naive_utc
from ..services.notifications import AssignmentNotifier, get_notifier


router = APIRouter(prefix="/callbacks", tags=["callbacks"])


def _parse_status(raw: Optional[str]) -> Optional[CallbackStatus]:
    if not raw:
        return None
    try:
        return CallbackStatus(raw)
    except ValueError:
        raise ValidationError(f"Invalid callback status: {raw}", fields={"status": "unknown status"})


@router.get("", response_model=List[CallbackResponse])
def list_callbacks(
    assigned_to: Optional[int] = None,
    customer_id: Optional[int] = None,
    status: Optional[str] = None,
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return callback_service.list_callbacks(
        db,
        assigned_to=assigned_to,
        customer_id=customer_id,
        status=_parse_status(status),
        from_date=to_naive_utc(from_date),
        to_date=to_naive_utc(to_date),
    )


@router.get("/deleted", response_model=List[CallbackResponse])
def list_deleted_callbacks(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return callback_service.list_deleted_callbacks(db)


@router.post("/purge-expired", response_model=PurgeResult)
def purge_expired(
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(require_roles()),
):
    return {"purged": callback_service.purge_expired_callbacks(db, clock=clock)}


@router.post("", response_model=CallbackResponse, status_code=201)
def create_callback(
    payload: CallbackCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: AssignmentNotifier = Depends(get_notifier),
    user: User = Depends(get_current_user),
):
    return callback_service.create_callback(
        db, payload.model_dump(exclude_unset=True), user.id,
        clock=clock, notifier=notifier,
    )


@router.get("/{callback_id}", response_model=CallbackResponse)
def get_callback(callback_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return callback_service.get_callback(db, callback_id)


@router.patch("/{callback_id}", response_model=CallbackResponse)
def update_callback(
    callback_id: int,
    payload: CallbackUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: AssignmentNotifier = Depends(get_notifier),
    user: User = Depends(get_current_user),
):
    return callback_service.update_callback(
        db, callback_id, payload.model_dump(exclude_unset=True), user.id,
        clock=clock, notifier=notifier,
    )


@router.post("/{callback_id}/complete", response_model=CallbackResponse)
def complete_callback(
    callback_id: int,
    payload: Optional[CallbackComplete] = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    notes = payload.notes if payload else None
    return callback_service.complete_callback(db, callback_id, notes, user.id, clock=clock)


@router.post("/{callback_id}/delete", response_model=CallbackResponse)
def soft_delete_callback(
    callback_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(get_current_user),
):
    return callback_service.soft_delete_callback(db, callback_id, clock=clock)


@router.post("/{callback_id}/restore", response_model=CallbackResponse)
def restore_callback(callback_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return callback_service.restore_callback(db, callback_id)


@router.delete("/{callback_id}/permanent", status_code=204)
def permanently_delete_callback(callback_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    callback_service.permanently_delete_callback(db, callback_id)

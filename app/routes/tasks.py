from typing import Optional, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..models.models import User
from ..schemas.tasks import TaskCreate, TaskUpdate, TaskStatusChange, TaskResponse
from ..services import task_service
from ..services.clock import Clock, get_clock
from ..services.notifications import AssignmentNotifier, get_notifier


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=List[TaskResponse])
def list_tasks(
    assigned_to: Optional[int] = None,
    pending_only: bool = False,
    mine: bool = False,
    status: Optional[str] = None,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    parsed = task_service.parse_task_status(status) if status else None
    if mine:
        assigned_to = user.id
    return task_service.list_tasks(db, assigned_to=assigned_to, pending_only=pending_only, status=parsed)


@router.post("", response_model=TaskResponse, status_code=201)
def create_task(
    payload: TaskCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: AssignmentNotifier = Depends(get_notifier),
    user: User = Depends(get_current_user),
):
    return task_service.create_task(db, payload.model_dump(), user.id, notifier=notifier, clock=clock)


@router.get("/{task_id}", response_model=TaskResponse)
def get_task(task_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return task_service.get_task(db, task_id)


@router.patch("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    notifier: AssignmentNotifier = Depends(get_notifier),
    user: User = Depends(get_current_user),
):
    return task_service.update_task(
        db, task_id, payload.model_dump(exclude_unset=True), user.id,
        notifier=notifier, clock=clock,
    )


@router.post("/{task_id}/status", response_model=TaskResponse)
def change_task_status(
    task_id: int,
    payload: TaskStatusChange,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return task_service.set_task_status(db, task_id, payload.status, user.id, clock=clock)


@router.delete("/{task_id}", status_code=204)
def delete_task(task_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    task_service.delete_task(db, task_id)

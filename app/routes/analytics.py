from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..auth.security import get_current_user, require_roles
from ..models.models import CallbackRequest, Customer, Job, Task, User
from ..services import analytics
from ..services.clock import Clock, get_clock
from ..services.reports import build_callback_report_pdf


router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/summary")
def dashboard_summary(
    user_id: Optional[int] = None,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(get_current_user),
):
    return analytics.summarize(
        db.query(Job).all(),
        db.query(Task).all(),
        db.query(Customer).all(),
        now=clock(),
        tz=settings.tz_default,
        user_id=user_id,
    )


def _callback_analytics(db: Session, now: datetime, from_date: Optional[datetime], to_date: Optional[datetime]) -> dict:
    date_range = (from_date, to_date) if (from_date or to_date) else None
    return analytics.summarize_callbacks(
        db.query(CallbackRequest).all(),
        db.query(User).all(),
        date_range,
        now=now,
        tz=settings.tz_default,
    )


@router.get("/callbacks")
def callback_analytics(
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(require_roles()),
):
    return _callback_analytics(db, clock(), from_date, to_date)


@router.get("/callbacks/report")
def callback_report(
    from_date: Optional[datetime] = Query(default=None, alias="from"),
    to_date: Optional[datetime] = Query(default=None, alias="to"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(require_roles()),
):
    now = clock()
    data = _callback_analytics(db, now, from_date, to_date)
    pdf = build_callback_report_pdf(data, generated_at=now, business_name=settings.app_name)
    filename = f"callback-report-{now.strftime('%Y%m%d')}.pdf"
    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

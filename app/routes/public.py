from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.job_service import get_public_job_tracker
from ..services.order_service import get_public_order_tracker


router = APIRouter(prefix="/public", tags=["public"])


@router.get("/jobs/lookup")
def lookup_job(job_code: str = Query(...), email: str = Query(...), db: Session = Depends(get_db)):
    return get_public_job_tracker(db, job_code, email)


@router.get("/orders/lookup")
def lookup_order(order_number: str = Query(...), email: str = Query(...), db: Session = Depends(get_db)):
    return get_public_order_tracker(db, order_number, email)

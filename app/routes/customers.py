from typing import Optional, List

from fastapi import APIRouter, Depends, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models.models import Customer, Job, User
from ..schemas.customers import CustomerCreate, CustomerUpdate, CustomerResponse
from ..schemas.jobs import JobResponse
from ..services.activity import record_activity
from ..services.clock import Clock, get_clock
from ..services.job_service import list_jobs
from ..services.side_effects import best_effort


router = APIRouter(prefix="/customers", tags=["customers"])


def _get_customer(db: Session, customer_id: int) -> Customer:
    customer = db.query(Customer).filter(Customer.id == customer_id).first()
    if not customer:
        raise NotFoundError("Customer", customer_id)
    return customer


@router.get("", response_model=List[CustomerResponse])
def list_customers(
    q: Optional[str] = Query(default=None, description="Search name, email or phone"),
    limit: int = Query(default=200, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    query = db.query(Customer)
    if q:
        like = f"%{q.strip()}%"
        query = query.filter(or_(Customer.name.ilike(like), Customer.email.ilike(like), Customer.phone.ilike(like)))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).limit(limit).offset(offset).all()


@router.post("", response_model=CustomerResponse, status_code=201)
def create_customer(
    payload: CustomerCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    now = clock()
    customer = Customer(**payload.model_dump(), created_at=now)
    db.add(customer)
    db.commit()
    db.refresh(customer)
    best_effort(
        db, "customer_created_activity", record_activity,
        user.id, "customer_created",
        entity_type="customer", entity_id=customer.id,
        metadata={"customer_name": customer.name}, timestamp=now,
    )
    return customer


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return _get_customer(db, customer_id)


@router.patch("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    customer = _get_customer(db, customer_id)
    changes = payload.model_dump(exclude_unset=True)
    if "name" in changes and not (changes["name"] or "").strip():
        raise ValidationError("name cannot be empty", fields={"name": "required"})
    for field, value in changes.items():
        setattr(customer, field, value.strip() if isinstance(value, str) else value)
    db.commit()
    db.refresh(customer)
    if changes:
        best_effort(
            db, "customer_updated_activity", record_activity,
            user.id, "customer_updated",
            entity_type="customer", entity_id=customer.id,
            metadata={"customer_name": customer.name, "changes": ", ".join(sorted(changes))},
            timestamp=clock(),
        )
    return customer


@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    customer = _get_customer(db, customer_id)
    if db.query(Job).filter(Job.customer_id == customer_id).first():
        raise InvalidStateError("Customer has jobs and cannot be deleted")
    db.delete(customer)
    db.commit()


@router.get("/{customer_id}/jobs", response_model=List[JobResponse])
def customer_jobs(customer_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    _get_customer(db, customer_id)
    return list_jobs(db, customer_id=customer_id)

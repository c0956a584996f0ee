from typing import Optional, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models.models import Customer, Equipment, EquipmentType, Job, User
from ..schemas.customers import (
    EquipmentCreate, EquipmentUpdate, EquipmentResponse,
    EquipmentTypeCreate, EquipmentTypeResponse,
)
from ..services.activity import record_activity
from ..services.clock import Clock, get_clock
from ..services.side_effects import best_effort


router = APIRouter(tags=["equipment"])


def _equipment_label(db: Session, equipment: Equipment) -> str:
    equipment_type = db.query(EquipmentType).filter(EquipmentType.id == equipment.type_id).first()
    name = equipment_type.name if equipment_type else "Equipment"
    return f"{name} ({equipment.serial_number})"


def _check_refs(db: Session, type_id: Optional[int], customer_id: Optional[int]) -> None:
    if type_id is not None and not db.query(EquipmentType).filter(EquipmentType.id == type_id).first():
        raise ValidationError(f"Equipment type {type_id} does not exist", fields={"type_id": "not found"})
    if customer_id is not None and not db.query(Customer).filter(Customer.id == customer_id).first():
        raise ValidationError(f"Customer {customer_id} does not exist", fields={"customer_id": "not found"})


@router.get("/equipment-types", response_model=List[EquipmentTypeResponse])
def list_equipment_types(db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return db.query(EquipmentType).order_by(EquipmentType.name.asc()).all()


@router.post("/equipment-types", response_model=EquipmentTypeResponse, status_code=201)
def create_equipment_type(payload: EquipmentTypeCreate, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    name = payload.name.strip()
    if not name:
        raise ValidationError("name is required", fields={"name": "required"})
    if db.query(EquipmentType).filter(EquipmentType.name == name).first():
        raise ValidationError(f"Equipment type {name} already exists", fields={"name": "already exists"})
    row = EquipmentType(name=name, brand=payload.brand, model=payload.model)
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


@router.get("/equipment", response_model=List[EquipmentResponse])
def list_equipment(customer_id: Optional[int] = None, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    query = db.query(Equipment)
    if customer_id is not None:
        query = query.filter(Equipment.customer_id == customer_id)
    return query.order_by(Equipment.id.asc()).all()


@router.post("/equipment", response_model=EquipmentResponse, status_code=201)
def create_equipment(
    payload: EquipmentCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    _check_refs(db, payload.type_id, payload.customer_id)
    equipment = Equipment(**payload.model_dump())
    db.add(equipment)
    db.commit()
    db.refresh(equipment)
    best_effort(
        db, "equipment_created_activity", record_activity,
        user.id, "equipment_created",
        entity_type="equipment", entity_id=equipment.id,
        metadata={"equipment_name": _equipment_label(db, equipment)}, timestamp=clock(),
    )
    return equipment


@router.get("/equipment/{equipment_id}", response_model=EquipmentResponse)
def get_equipment(equipment_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    equipment = db.query(Equipment).filter(Equipment.id == equipment_id).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    return equipment


@router.patch("/equipment/{equipment_id}", response_model=EquipmentResponse)
def update_equipment(equipment_id: int, payload: EquipmentUpdate, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    equipment = db.query(Equipment).filter(Equipment.id == equipment_id).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    changes = payload.model_dump(exclude_unset=True)
    _check_refs(db, changes.get("type_id"), changes.get("customer_id"))
    for field, value in changes.items():
        if value is not None or field in ("purchase_date", "notes"):
            setattr(equipment, field, value)
    db.commit()
    db.refresh(equipment)
    return equipment


@router.delete("/equipment/{equipment_id}", status_code=204)
def delete_equipment(
    equipment_id: int,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    equipment = db.query(Equipment).filter(Equipment.id == equipment_id).first()
    if not equipment:
        raise NotFoundError("Equipment", equipment_id)
    if db.query(Job).filter(Job.equipment_id == equipment_id).first():
        raise InvalidStateError("Equipment is linked to jobs and cannot be deleted")
    label = _equipment_label(db, equipment)
    db.delete(equipment)
    db.commit()
    best_effort(
        db, "equipment_deleted_activity", record_activity,
        user.id, "equipment_deleted",
        entity_type="equipment", entity_id=equipment_id,
        metadata={"equipment_name": label}, timestamp=clock(),
    )

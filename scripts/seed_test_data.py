"""
Seed the local database with sample staff, customers, equipment and work.

Usage:
  python scripts/seed_test_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (username for users, name for customers and
equipment types, serial number for equipment).
"""
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.db import SessionLocal, Base, engine
from app.models.enums import Priority, UserRole
from app.models.models import Customer, Equipment, EquipmentType, Job, User
from app.services import callback_service, job_service
from app.services.clock import utc_now


def ensure_user(session, username: str, full_name: str, email: str, role: UserRole) -> User:
    user = session.query(User).filter(User.username == username).first()
    if user:
        user.full_name = full_name
        user.email = email
        user.role = role
        return user
    user = User(username=username, full_name=full_name, email=email, role=role, is_active=True)
    session.add(user)
    session.flush()
    return user


def ensure_customer(session, name: str, **fields) -> Customer:
    customer = session.query(Customer).filter(Customer.name == name).first()
    if customer:
        for k, v in fields.items():
            setattr(customer, k, v)
        return customer
    customer = Customer(name=name, **fields)
    session.add(customer)
    session.flush()
    return customer


def ensure_equipment_type(session, name: str, brand: str, model: str) -> EquipmentType:
    equipment_type = session.query(EquipmentType).filter(EquipmentType.name == name).first()
    if equipment_type:
        return equipment_type
    equipment_type = EquipmentType(name=name, brand=brand, model=model)
    session.add(equipment_type)
    session.flush()
    return equipment_type


def ensure_equipment(session, serial_number: str, equipment_type: EquipmentType, customer: Customer) -> Equipment:
    equipment = session.query(Equipment).filter(Equipment.serial_number == serial_number).first()
    if equipment:
        return equipment
    equipment = Equipment(serial_number=serial_number, type_id=equipment_type.id, customer_id=customer.id)
    session.add(equipment)
    session.flush()
    return equipment


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        admin = ensure_user(session, "admin", "Workshop Admin", "admin@example.com", UserRole.ADMIN)
        mechanic = ensure_user(session, "mike.mechanic", "Mike Mechanic", "mike@example.com", UserRole.MECHANIC)
        ensure_user(session, "sam.staff", "Sam Staff", "sam@example.com", UserRole.STAFF)

        jane = ensure_customer(session, "Jane Doe", email="jane@example.com", phone="555-1212", address="1 High Street")
        bob = ensure_customer(session, "Bob Smith", email="bob@example.com", phone="555-3434")

        mower = ensure_equipment_type(session, "Lawn Mower", "Honda", "HRX217")
        chainsaw = ensure_equipment_type(session, "Chainsaw", "Stihl", "MS 261")
        jane_mower = ensure_equipment(session, "HRX-0001", mower, jane)
        bob_saw = ensure_equipment(session, "MS-0001", chainsaw, bob)
        session.commit()

        now = utc_now()
        if not session.query(Job).filter(Job.customer_id == jane.id).first():
            job_service.create_job(session, {
                "customer_id": jane.id,
                "equipment_id": jane_mower.id,
                "description": "Annual service, blade sharpening",
            }, admin.id)
        if not session.query(Job).filter(Job.customer_id == bob.id).first():
            job = job_service.create_job(session, {
                "customer_id": bob.id,
                "equipment_id": bob_saw.id,
                "description": "Chain keeps slipping",
                "assigned_to": mechanic.id,
            }, admin.id)
            job_service.add_job_update(session, job.id, "Chain and bar inspected", mechanic.id)

        if not callback_service.list_callbacks(session, customer_id=jane.id):
            callback_service.create_callback(session, {
                "customer_name": "Jane Doe",
                "phone_number": "555-1212",
                "subject": "Mower pickup time",
                "priority": Priority.HIGH.value,
                "assigned_to": mechanic.id,
            }, admin.id, clock=lambda: now - timedelta(hours=2))

        print("Seed completed: staff, customers, equipment, jobs and callbacks upserted.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()

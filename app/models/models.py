from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    JSON,
    Text,
    Index,
    Enum as SAEnum,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base
from ..services.clock import utc_now
from .enums import (
    CallbackStatus,
    JobStatus,
    NotificationStatus,
    OrderStatus,
    Priority,
    TaskStatus,
    UserRole,
)


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def enum_column(enum_cls, default, index: bool = False):
    # Stored as VARCHAR; unknown strings are rejected on write
    return mapped_column(
        SAEnum(
            enum_cls,
            native_enum=False,
            length=32,
            values_callable=_enum_values,
            validate_strings=True,
            name=f"{enum_cls.__name__.lower()}_enum",
        ),
        default=default,
        nullable=False,
        index=index,
    )


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    role: Mapped[UserRole] = enum_column(UserRole, UserRole.STAFF)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    # None means "never set", which counts as enabled
    task_notifications: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    job_notifications: Mapped[Optional[bool]] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    address: Mapped[Optional[str]] = mapped_column(String(500))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)

    equipment = relationship("Equipment", back_populates="customer", cascade="all, delete-orphan")
    jobs = relationship("Job", back_populates="customer")


class EquipmentType(Base):
    __tablename__ = "equipment_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(255))
    model: Mapped[Optional[str]] = mapped_column(String(255))


class Equipment(Base):
    __tablename__ = "equipment"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    serial_number: Mapped[str] = mapped_column(String(255), nullable=False)
    type_id: Mapped[int] = mapped_column(Integer, ForeignKey("equipment_types.id"), nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, index=True)
    purchase_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    equipment_type = relationship("EquipmentType")
    customer = relationship("Customer", back_populates="equipment")


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    customer_id: Mapped[int] = mapped_column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    equipment_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("equipment.id", ondelete="SET NULL"), index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[JobStatus] = enum_column(JobStatus, JobStatus.WAITING_ASSESSMENT, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    estimated_hours: Mapped[Optional[int]] = mapped_column(Integer)
    actual_hours: Mapped[Optional[int]] = mapped_column(Integer)
    customer_notified: Mapped[bool] = mapped_column(Boolean, default=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    customer = relationship("Customer", back_populates="jobs")
    equipment = relationship("Equipment")
    updates = relationship(
        "JobUpdate",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobUpdate.created_at.desc()",
    )

    __mapper_args__ = {"version_id_col": version}


class JobUpdate(Base):
    __tablename__ = "job_updates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    note: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    job = relationship("Job", back_populates="updates")


class Service(Base):
    """Service record performed on a job"""
    __tablename__ = "services"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    job_id: Mapped[int] = mapped_column(Integer, ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False, index=True)
    service_type: Mapped[str] = mapped_column(String(100), default="general")
    details: Mapped[Optional[str]] = mapped_column(Text)
    performed_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    performed_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    parts_used: Mapped[Optional[list]] = mapped_column(JSON)  # [{name, quantity}]
    cost: Mapped[Optional[int]] = mapped_column(Integer)  # pence
    labor_hours: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)


class Task(Base):
    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    priority: Mapped[Priority] = enum_column(Priority, Priority.MEDIUM)
    status: Mapped[TaskStatus] = enum_column(TaskStatus, TaskStatus.PENDING, index=True)
    assigned_to: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    due_date: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    related_entity_type: Mapped[Optional[str]] = mapped_column(String(50))  # job|callback
    related_entity_id: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        Index("idx_tasks_related", "related_entity_type", "related_entity_id"),
    )
    __mapper_args__ = {"version_id_col": version}


class CallbackRequest(Base):
    __tablename__ = "callback_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), index=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[str] = mapped_column(String(255), nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text)
    priority: Mapped[Priority] = enum_column(Priority, Priority.MEDIUM)
    assigned_to: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"), index=True)
    status: Mapped[CallbackStatus] = enum_column(CallbackStatus, CallbackStatus.PENDING, index=True)
    related_task_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"))
    requested_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delete_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    related_task = relationship("Task")

    __mapper_args__ = {"version_id_col": version}


# =====================
# Orders domain
# =====================

class Order(Base):
    """Customer order for parts, machines or accessories"""
    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("customers.id", ondelete="SET NULL"), index=True)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255))
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[OrderStatus] = enum_column(OrderStatus, OrderStatus.NOT_ORDERED, index=True)
    supplier_name: Mapped[Optional[str]] = mapped_column(String(255))
    supplier_email: Mapped[Optional[str]] = mapped_column(String(255))
    supplier_phone: Mapped[Optional[str]] = mapped_column(String(50))
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100))
    expected_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    # Money in pence
    estimated_total_cost: Mapped[Optional[int]] = mapped_column(Integer)
    actual_total_cost: Mapped[Optional[int]] = mapped_column(Integer)
    deposit_amount: Mapped[Optional[int]] = mapped_column(Integer)
    notify_on_status_change: Mapped[bool] = mapped_column(Boolean, default=True)
    notify_on_arrival: Mapped[bool] = mapped_column(Boolean, default=True)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    related_job_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("jobs.id", ondelete="SET NULL"))
    created_by: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="SET NULL"))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.id",
    )
    history = relationship(
        "OrderStatusHistory",
        cascade="all, delete-orphan",
        order_by="OrderStatusHistory.created_at",
    )


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    item_name: Mapped[str] = mapped_column(String(255), nullable=False)
    item_type: Mapped[str] = mapped_column(String(50), default="part")  # part|machine|accessory|service|consumable
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    unit_price: Mapped[Optional[int]] = mapped_column(Integer)
    price_excluding_vat: Mapped[Optional[int]] = mapped_column(Integer)
    price_including_vat: Mapped[Optional[int]] = mapped_column(Integer)
    total_price: Mapped[Optional[int]] = mapped_column(Integer)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    __tablename__ = "order_status_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    previous_status: Mapped[Optional[str]] = mapped_column(String(32))
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by: Mapped[Optional[int]] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False)


class Activity(Base):
    """Append-only workshop activity feed"""
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[Optional[str]] = mapped_column(String(50))
    entity_id: Mapped[Optional[int]] = mapped_column(Integer)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=utc_now, nullable=False, index=True)
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON)

    __table_args__ = (
        Index("idx_activities_entity", "entity_type", "entity_id"),
    )


class Notification(Base):
    """Outbox of notifications sent (or attempted) to staff"""
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("users.id", ondelete="CASCADE"), index=True)
    channel: Mapped[str] = mapped_column(String(20), nullable=False, default="email")
    template_key: Mapped[Optional[str]] = mapped_column(String(100))
    payload_json: Mapped[Optional[dict]] = mapped_column(JSON)
    status: Mapped[NotificationStatus] = enum_column(NotificationStatus, NotificationStatus.PENDING)
    error_message: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utc_now)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (
        Index("idx_notifications_user_status", "user_id", "status"),
    )

"""
Customer orders for parts, machines and accessories.
"""
from typing import Optional, Dict, Any, List

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models.enums import OrderStatus
from ..models.models import Customer, Job, Order, OrderItem, OrderStatusHistory
from .activity import record_activity
from .clock import Clock, utc_now
from .codes import commit_with_code
from .notifications import notify_customer
from .side_effects import best_effort


log = structlog.get_logger(__name__)

ORDER_FIELDS = (
    "customer_id",
    "customer_name",
    "customer_email",
    "customer_phone",
    "supplier_name",
    "supplier_email",
    "supplier_phone",
    "tracking_number",
    "expected_delivery_date",
    "estimated_total_cost",
    "actual_total_cost",
    "deposit_amount",
    "notify_on_status_change",
    "notify_on_arrival",
    "notes",
    "related_job_id",
)

ITEM_FIELDS = (
    "item_name",
    "item_type",
    "quantity",
    "unit_price",
    "price_excluding_vat",
    "price_including_vat",
    "total_price",
    "notes",
)


def format_pence(pence: Optional[int]) -> Optional[str]:
    if pence is None:
        return None
    return f"£{pence / 100:.2f}"


def order_total_display(order: Order) -> Dict[str, Any]:
    """Actual cost wins over the estimate; neither means no total."""
    if order.actual_total_cost is not None:
        return {"amount": order.actual_total_cost, "source": "actual", "display": format_pence(order.actual_total_cost)}
    if order.estimated_total_cost is not None:
        return {"amount": order.estimated_total_cost, "source": "estimated", "display": format_pence(order.estimated_total_cost)}
    return {"amount": None, "source": None, "display": None}


def item_price_display(item: OrderItem) -> Optional[str]:
    ex_vat = format_pence(item.price_excluding_vat)
    inc_vat = format_pence(item.price_including_vat)
    if ex_vat and inc_vat:
        return f"{ex_vat} ex VAT / {inc_vat} inc VAT"
    if ex_vat:
        return f"{ex_vat} ex VAT"
    if inc_vat:
        return f"{inc_vat} inc VAT"
    return format_pence(item.unit_price)


def parse_order_status(raw) -> OrderStatus:
    try:
        return OrderStatus(raw)
    except ValueError:
        raise ValidationError(
            f"Invalid order status: {raw}",
            fields={"status": f"must be one of {', '.join(s.value for s in OrderStatus)}"},
        )


def get_order(db: Session, order_id: int) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError("Order", order_id)
    return order


def get_order_by_number(db: Session, order_number: str) -> Optional[Order]:
    return db.query(Order).filter(Order.order_number == order_number.strip().upper()).first()


def list_orders(
    db: Session,
    status: Optional[OrderStatus] = None,
    customer_id: Optional[int] = None,
    related_job_id: Optional[int] = None,
    search: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> List[Order]:
    query = db.query(Order)
    if status is not None:
        query = query.filter(Order.status == status)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if related_job_id is not None:
        query = query.filter(Order.related_job_id == related_job_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(like),
            Order.customer_name.ilike(like),
            Order.supplier_name.ilike(like),
            Order.tracking_number.ilike(like),
        ))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).limit(limit).offset(offset).all()


def _touch_job(db: Session, job_id: Optional[int], now) -> None:
    if not job_id:
        return
    job = db.query(Job).filter(Job.id == job_id).first()
    if job:
        job.updated_at = now


def _build_item(data: Dict[str, Any]) -> OrderItem:
    name = (data.get("item_name") or "").strip()
    if not name:
        raise ValidationError("item_name is required", fields={"item_name": "required"})
    quantity = data.get("quantity", 1)
    if quantity is None or quantity < 1:
        raise ValidationError("quantity must be at least 1", fields={"quantity": "must be >= 1"})
    total = data.get("total_price")
    if total is None and data.get("unit_price") is not None:
        total = data["unit_price"] * quantity
    return OrderItem(
        item_name=name,
        item_type=data.get("item_type") or "part",
        quantity=quantity,
        unit_price=data.get("unit_price"),
        price_excluding_vat=data.get("price_excluding_vat"),
        price_including_vat=data.get("price_including_vat"),
        total_price=total,
        notes=data.get("notes"),
    )


def create_order(db: Session, data: Dict[str, Any], actor_id: Optional[int] = None, *, clock: Clock = utc_now) -> Order:
    data = dict(data)
    items = data.pop("items", None) or []
    customer_id = data.get("customer_id")
    if customer_id is not None:
        customer = db.query(Customer).filter(Customer.id == customer_id).first()
        if not customer:
            raise ValidationError(f"Customer {customer_id} does not exist", fields={"customer_id": "not found"})
        data["customer_name"] = data.get("customer_name") or customer.name
        data["customer_email"] = data.get("customer_email") or customer.email
        data["customer_phone"] = data.get("customer_phone") or customer.phone
    if not (data.get("customer_name") or "").strip():
        raise ValidationError("customer_name is required", fields={"customer_name": "required"})
    if data.get("related_job_id") is not None and not db.query(Job).filter(Job.id == data["related_job_id"]).first():
        raise ValidationError(f"Job {data['related_job_id']} does not exist", fields={"related_job_id": "not found"})

    status = parse_order_status(data.get("status") or OrderStatus.NOT_ORDERED)
    now = clock()
    order = Order(
        status=status,
        created_by=actor_id,
        created_at=now,
        completed_at=now if status == OrderStatus.COMPLETED else None,
    )
    for field in ORDER_FIELDS:
        if field in data and data[field] is not None:
            setattr(order, field, data[field])
    order.customer_name = order.customer_name.strip()
    order.items = [_build_item(item) for item in items]
    order.history.append(OrderStatusHistory(previous_status=None, new_status=status.value, changed_by=actor_id, created_at=now))
    commit_with_code(db, order, "order_number", Order.order_number, settings.order_number_prefix, settings.order_number_start)
    if order.related_job_id:
        _touch_job(db, order.related_job_id, now)
        db.commit()
    db.refresh(order)
    log.info("order_created", order_id=order.id, order_number=order.order_number, items=len(order.items))

    best_effort(
        db, "order_created_activity", record_activity,
        actor_id, "order_created",
        entity_type="order", entity_id=order.id,
        metadata={"order_number": order.order_number, "customer_name": order.customer_name},
        timestamp=now,
    )
    return order


def update_order(db: Session, order_id: int, changes: Dict[str, Any], actor_id: Optional[int] = None, *, clock: Clock = utc_now) -> Order:
    order = get_order(db, order_id)
    changes = dict(changes)
    if "customer_name" in changes and not (changes["customer_name"] or "").strip():
        raise ValidationError("customer_name cannot be empty", fields={"customer_name": "required"})
    changed = False
    for field in ORDER_FIELDS:
        if field in changes and getattr(order, field) != changes[field]:
            setattr(order, field, changes[field])
            changed = True
    new_status = changes.get("status")
    if changed:
        now = clock()
        order.updated_at = now
        _touch_job(db, order.related_job_id, now)
        db.commit()
        db.refresh(order)
    if new_status is not None:
        order = update_order_status(db, order.id, new_status, actor_id, clock=clock)
    return order


def update_order_status(
    db: Session,
    order_id: int,
    new_status,
    actor_id: Optional[int] = None,
    *,
    clock: Clock = utc_now,
    notify_on_arrival: Optional[bool] = None,
) -> Order:
    status = parse_order_status(new_status)
    order = get_order(db, order_id)
    if notify_on_arrival is not None:
        order.notify_on_arrival = notify_on_arrival
    previous = order.status
    now = clock()
    if previous == status:
        db.commit()
        return order

    order.status = status
    order.updated_at = now
    order.completed_at = now if status == OrderStatus.COMPLETED else None
    order.history.append(OrderStatusHistory(
        previous_status=previous.value,
        new_status=status.value,
        changed_by=actor_id,
        created_at=now,
    ))
    _touch_job(db, order.related_job_id, now)
    db.commit()
    db.refresh(order)
    log.info("order_status_changed", order_id=order.id, old_status=previous.value, new_status=status.value)

    best_effort(
        db, "order_status_activity", record_activity,
        actor_id, "order_status_changed",
        entity_type="order", entity_id=order.id,
        metadata={"order_number": order.order_number, "old_status": previous.value, "new_status": status.value},
        timestamp=now,
    )
    if status == OrderStatus.ARRIVED and order.notify_on_arrival and order.customer_email:
        best_effort(
            db, "order_arrived_email", notify_customer,
            email=order.customer_email,
            template_key="order_arrived",
            subject=f"Your order {order.order_number} has arrived",
            body=_arrival_body(order),
            payload={"order_id": order.id, "order_number": order.order_number},
            clock=clock,
        )
    return order


def _arrival_body(order: Order) -> str:
    lines = [
        f"Hi {order.customer_name},",
        "",
        f"Good news, your order {order.order_number} has arrived and is ready to collect.",
    ]
    for item in order.items:
        lines.append(f"- {item.item_name} x{item.quantity}")
    return "\n".join(lines)


def add_order_item(db: Session, order_id: int, data: Dict[str, Any], *, clock: Clock = utc_now) -> OrderItem:
    order = get_order(db, order_id)
    item = _build_item(data)
    order.items.append(item)
    order.updated_at = clock()
    db.commit()
    db.refresh(item)
    return item


def _get_item(db: Session, order_id: int, item_id: int) -> OrderItem:
    item = db.query(OrderItem).filter(OrderItem.id == item_id, OrderItem.order_id == order_id).first()
    if not item:
        raise NotFoundError("Order item", item_id)
    return item


def update_order_item(db: Session, order_id: int, item_id: int, changes: Dict[str, Any]) -> OrderItem:
    item = _get_item(db, order_id, item_id)
    if "item_name" in changes and not (changes["item_name"] or "").strip():
        raise ValidationError("item_name cannot be empty", fields={"item_name": "required"})
    if "quantity" in changes and (changes["quantity"] is None or changes["quantity"] < 1):
        raise ValidationError("quantity must be at least 1", fields={"quantity": "must be >= 1"})
    for field in ITEM_FIELDS:
        if field in changes:
            setattr(item, field, changes[field])
    db.commit()
    db.refresh(item)
    return item


def delete_order_item(db: Session, order_id: int, item_id: int) -> None:
    item = _get_item(db, order_id, item_id)
    db.delete(item)
    db.commit()


def delete_order(db: Session, order_id: int) -> None:
    order = get_order(db, order_id)
    db.delete(order)
    db.commit()


def get_public_order_tracker(db: Session, order_number: str, email: str) -> Dict[str, Any]:
    order = get_order_by_number(db, order_number or "")
    if (
        not order
        or not order.customer_email
        or not email
        or order.customer_email.strip().lower() != email.strip().lower()
    ):
        raise NotFoundError("Order", order_number)
    return {
        "order_number": order.order_number,
        "status": order.status.value,
        "customer_name": order.customer_name,
        "expected_delivery_date": order.expected_delivery_date,
        "tracking_number": order.tracking_number,
        "total": order_total_display(order),
        "items": [
            {"item_name": i.item_name, "quantity": i.quantity, "price": item_price_display(i)}
            for i in order.items
        ],
        "history": [
            {"status": h.new_status, "created_at": h.created_at} for h in order.history
        ],
    }

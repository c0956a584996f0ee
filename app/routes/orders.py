from typing import Optional, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..auth.security import get_current_user
from ..models.models import User, Order, OrderItem
from ..schemas.orders import (
    OrderCreate, OrderUpdate, OrderStatusChange, OrderResponse, OrderTotal,
    OrderItemCreate, OrderItemUpdate, OrderItemResponse,
)
from ..services import order_service
from ..services.clock import Clock, get_clock


router = APIRouter(prefix="/orders", tags=["orders"])


def _item_out(item: OrderItem) -> OrderItemResponse:
    out = OrderItemResponse.model_validate(item)
    out.price_display = order_service.item_price_display(item)
    return out


def _order_out(order: Order) -> OrderResponse:
    out = OrderResponse.model_validate(order)
    out.total = OrderTotal(**order_service.order_total_display(order))
    out.items = [_item_out(i) for i in order.items]
    return out


@router.get("", response_model=List[OrderResponse])
def list_orders(
    status: Optional[str] = None,
    customer_id: Optional[int] = None,
    related_job_id: Optional[int] = None,
    q: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    parsed = order_service.parse_order_status(status) if status else None
    orders = order_service.list_orders(
        db, status=parsed, customer_id=customer_id, related_job_id=related_job_id,
        search=q, limit=limit, offset=offset,
    )
    return [_order_out(o) for o in orders]


@router.post("", response_model=OrderResponse, status_code=201)
def create_order(
    payload: OrderCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    return _order_out(order_service.create_order(db, payload.model_dump(), user.id, clock=clock))


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    return _order_out(order_service.get_order(db, order_id))


@router.patch("/{order_id}", response_model=OrderResponse)
def update_order(
    order_id: int,
    payload: OrderUpdate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    order = order_service.update_order(db, order_id, payload.model_dump(exclude_unset=True), user.id, clock=clock)
    return _order_out(order)


@router.delete("/{order_id}", status_code=204)
def delete_order(order_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    order_service.delete_order(db, order_id)


@router.post("/{order_id}/status", response_model=OrderResponse)
def change_order_status(
    order_id: int,
    payload: OrderStatusChange,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    user: User = Depends(get_current_user),
):
    order = order_service.update_order_status(
        db, order_id, payload.status, user.id,
        clock=clock, notify_on_arrival=payload.notify_on_arrival,
    )
    return _order_out(order)


@router.post("/{order_id}/items", response_model=OrderItemResponse, status_code=201)
def add_item(
    order_id: int,
    payload: OrderItemCreate,
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
    _: User = Depends(get_current_user),
):
    return _item_out(order_service.add_order_item(db, order_id, payload.model_dump(), clock=clock))


@router.patch("/{order_id}/items/{item_id}", response_model=OrderItemResponse)
def update_item(
    order_id: int,
    item_id: int,
    payload: OrderItemUpdate,
    db: Session = Depends(get_db),
    _: User = Depends(get_current_user),
):
    return _item_out(order_service.update_order_item(db, order_id, item_id, payload.model_dump(exclude_unset=True)))


@router.delete("/{order_id}/items/{item_id}", status_code=204)
def delete_item(order_id: int, item_id: int, db: Session = Depends(get_db), _: User = Depends(get_current_user)):
    order_service.delete_order_item(db, order_id, item_id)

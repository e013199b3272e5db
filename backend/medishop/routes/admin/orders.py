from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models.admin import Admin
from ...schemas.base import dump, envelope
from ...schemas.order import OrderResponse, OrderStatusUpdate
from ...services.order_service import OrderService
from ...utils.security import get_current_admin
from ..products import pagination

router = APIRouter(prefix="/admin/orders", tags=["Admin Orders"])


@router.get("")
async def list_orders(
    status: Optional[str] = None,
    source: Optional[str] = None,
    date_from: Optional[datetime] = Query(None, alias="dateFrom"),
    date_to: Optional[datetime] = Query(None, alias="dateTo"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """List all orders with filters"""
    orders, total = OrderService(db).list_orders(
        status=None if status == "all" else status,
        source=source,
        date_from=date_from,
        date_to=date_to,
        page=page,
        limit=limit
    )
    return envelope(
        [dump(OrderResponse, o) for o in orders],
        pagination=pagination(page, limit, total)
    )


@router.get("/{order_id}")
async def get_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    return envelope(dump(OrderResponse, OrderService(db).get_order(order_id)))


@router.api_route("/{order_id}/status", methods=["PUT", "PATCH"])
async def update_order_status(
    order_id: int,
    payload: OrderStatusUpdate,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Move an order to a new status and append it to the history"""
    order = OrderService(db).update_status(
        current_admin,
        order_id,
        payload.status,
        note=payload.note,
        tracking_number=payload.tracking_number
    )
    return envelope(dump(OrderResponse, order), "Order status updated successfully")

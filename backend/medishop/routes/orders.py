import json
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from pydantic import TypeAdapter, ValidationError
from sqlalchemy.orm import Session

from ..database import get_db
from ..errors import ValidationFailed
from ..models.user import User
from ..schemas.base import dump, envelope
from ..schemas.order import (
    ClientTotals,
    OrderCancelRequest,
    OrderItemInput,
    OrderResponse,
    OrderTrackingResponse,
    SelectedCartItem,
    ShippingAddress,
)
from ..services.address_service import AddressService
from ..services.file_storage import LocalFileStorage, get_file_storage
from ..services.order_service import OrderService
from ..utils.security import get_current_user
from .products import pagination

router = APIRouter(prefix="/orders", tags=["Orders"])


def parse_form_json(field: str, raw: Optional[str], schema, required: bool = False):
    """Multipart forms carry nested objects as JSON strings"""
    if raw is None or raw == "":
        if required:
            raise ValidationFailed(
                "Validation failed",
                errors=[{"field": field, "message": f"{field} is required"}]
            )
        return None
    try:
        return TypeAdapter(schema).validate_python(json.loads(raw))
    except json.JSONDecodeError:
        raise ValidationFailed(
            "Validation failed",
            errors=[{"field": field, "message": "Must be valid JSON"}]
        )
    except ValidationError as e:
        raise ValidationFailed(
            "Validation failed",
            errors=[
                {"field": ".".join([field] + [str(loc) for loc in err["loc"]]), "message": err["msg"]}
                for err in e.errors()
            ]
        )


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    shipping_address: Optional[str] = Form(None, alias="shippingAddress"),
    address_id: Optional[int] = Form(None, alias="addressId"),
    payment_method: str = Form("COD", alias="paymentMethod"),
    items: Optional[str] = Form(None),
    selected_items: Optional[str] = Form(None, alias="selectedItems"),
    prescription_url: Optional[str] = Form(None, alias="prescriptionUrl"),
    subtotal: Optional[float] = Form(None, ge=0),
    delivery_fee: Optional[float] = Form(None, ge=0, alias="deliveryFee"),
    taxes: Optional[float] = Form(None, ge=0),
    total: Optional[float] = Form(None, ge=0),
    notes: Optional[str] = Form(None),
    prescription: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_file_storage),
    current_user: User = Depends(get_current_user)
):
    """Place an order from the cart, a cart selection or an explicit item list"""
    if address_id is not None:
        # Saved addresses were validated when they were stored
        shipping = AddressService(db).get_address(current_user.id, address_id).to_shipping_address()
    else:
        address = parse_form_json("shippingAddress", shipping_address, ShippingAddress, required=True)
        shipping = address.model_dump(by_alias=True)
    order_items = parse_form_json("items", items, List[OrderItemInput])
    selection = parse_form_json("selectedItems", selected_items, List[SelectedCartItem])
    totals = ClientTotals(subtotal=subtotal, delivery_fee=delivery_fee, taxes=taxes, total=total)

    order = await OrderService(db, storage).place_order(
        current_user,
        shipping_address=shipping,
        payment_method=payment_method,
        items=[i.model_dump() for i in order_items] if order_items else None,
        selected_items=[s.model_dump() for s in selection] if selection else None,
        prescription_file=prescription,
        prescription_url=prescription_url,
        client_totals=totals.model_dump(),
        notes=notes
    )
    return envelope(dump(OrderResponse, order), "Order placed successfully")


@router.get("")
async def list_my_orders(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """List the current customer's orders, newest first"""
    orders, total = OrderService(db).list_orders(user_id=current_user.id, status=status, page=page, limit=limit)
    return envelope(
        [dump(OrderResponse, o) for o in orders],
        pagination=pagination(page, limit, total)
    )


@router.get("/{order_id}")
async def get_my_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    order = OrderService(db).get_order(order_id, user_id=current_user.id)
    return envelope(dump(OrderResponse, order))


@router.get("/{order_id}/track")
async def track_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Tracking view: status, history and timeline"""
    order = OrderService(db).get_order(order_id, user_id=current_user.id)
    return envelope(dump(OrderTrackingResponse, order))


@router.patch("/{order_id}/cancel")
async def cancel_order(
    order_id: int,
    payload: Optional[OrderCancelRequest] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Cancel a pending or confirmed order; stock is restored"""
    order = OrderService(db).cancel_order(current_user, order_id, payload.reason if payload else None)
    return envelope(dump(OrderResponse, order), "Order cancelled successfully")

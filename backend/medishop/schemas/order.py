from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, model_validator, validator

from ..models.order import PAYMENT_METHODS
from ..utils.validators import validate_indian_mobile, validate_pincode
from .base import CamelModel


class ShippingAddress(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    phone_number: str
    address: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    pincode: str
    landmark: Optional[str] = ""

    @model_validator(mode="before")
    @classmethod
    def accept_legacy_keys(cls, data):
        # Older clients send phone/street
        if isinstance(data, dict):
            data = dict(data)
            if not data.get("phoneNumber") and not data.get("phone_number") and data.get("phone"):
                data["phoneNumber"] = data.pop("phone")
            if not data.get("address") and data.get("street"):
                data["address"] = data.pop("street")
            for key, value in data.items():
                if isinstance(value, str):
                    data[key] = value.strip()
        return data

    @validator('phone_number')
    def validate_phone(cls, v):
        is_valid, normalized, error = validate_indian_mobile(v)
        if not is_valid:
            raise ValueError('Valid phone number is required')
        return normalized

    @validator('pincode')
    def validate_pin(cls, v):
        is_valid, cleaned, error = validate_pincode(v)
        if not is_valid:
            raise ValueError(error)
        return cleaned


def _payment_method(v):
    v = (v or "COD").upper()
    if v not in PAYMENT_METHODS:
        raise ValueError(f'Payment method must be one of: {", ".join(PAYMENT_METHODS)}')
    return v


class OrderItemInput(CamelModel):
    product_id: int
    quantity: int = Field(..., ge=1)


class SelectedCartItem(CamelModel):
    cart_item_id: Optional[int] = None
    product_id: Optional[int] = None
    quantity: Optional[int] = Field(None, ge=1)


class ClientTotals(CamelModel):
    subtotal: Optional[float] = Field(None, ge=0)
    delivery_fee: Optional[float] = Field(None, ge=0)
    taxes: Optional[float] = Field(None, ge=0)
    total: Optional[float] = Field(None, ge=0)


class OrderStatusUpdate(CamelModel):
    status: str
    note: Optional[str] = Field(None, max_length=500)
    tracking_number: Optional[str] = None


class OrderCancelRequest(CamelModel):
    reason: Optional[str] = Field(None, max_length=500)


class PrescriptionOrderCreate(CamelModel):
    items: List[OrderItemInput] = Field(..., min_length=1)
    shipping_address: ShippingAddress
    payment_method: str = "COD"
    notes: Optional[str] = None

    @validator('payment_method')
    def validate_payment_method(cls, v):
        return _payment_method(v)


# Responses
class StatusHistoryEntry(CamelModel):
    status: str
    note: Optional[str] = None
    changed_by: Optional[int] = None
    changed_by_type: Optional[str] = None
    changed_at: datetime


class OrderItemResponse(CamelModel):
    id: int
    product_id: Optional[int] = None
    quantity: int
    price: float
    name: str
    image: Optional[str] = None


class OrderResponse(CamelModel):
    id: int
    order_number: Optional[str] = None
    user_id: int
    items: List[OrderItemResponse] = []
    total_items: int = 0
    subtotal: float
    delivery_fee: float
    taxes: float
    total: float
    shipping_address: Dict
    payment_method: str
    payment_status: str
    source: str
    prescription_url: Optional[str] = None
    prescription_id: Optional[int] = None
    tracking_number: Optional[str] = None
    notes: Optional[str] = None
    status: str
    status_history: List[StatusHistoryEntry] = []
    timeline: Dict[str, datetime] = {}
    delivered_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class OrderTrackingResponse(CamelModel):
    order_number: Optional[str] = None
    status: str
    tracking_number: Optional[str] = None
    created_at: Optional[datetime] = None
    delivered_at: Optional[datetime] = None
    shipping_address: Dict
    items: List[OrderItemResponse] = []
    status_history: List[StatusHistoryEntry] = []
    timeline: Dict[str, datetime] = {}

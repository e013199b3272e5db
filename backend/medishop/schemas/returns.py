from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field, validator

from ..models.return_request import REFUND_METHODS, RETURN_REASONS
from .base import CamelModel
from .order import StatusHistoryEntry


class ReturnItemInput(CamelModel):
    order_item_id: int
    quantity: int = Field(..., ge=1)


class ReturnCreate(CamelModel):
    order_id: int
    items: List[ReturnItemInput] = Field(..., min_length=1)
    reason: str
    reason_description: str = Field(..., min_length=10, max_length=1000)
    refund_method: str = "original"
    images: List[str] = []

    @validator('reason')
    def validate_reason(cls, v):
        if v not in RETURN_REASONS:
            raise ValueError(f'Reason must be one of: {", ".join(RETURN_REASONS)}')
        return v

    @validator('refund_method')
    def validate_refund_method(cls, v):
        if v not in REFUND_METHODS:
            raise ValueError(f'Refund method must be one of: {", ".join(REFUND_METHODS)}')
        return v

    @validator('reason_description')
    def strip_description(cls, v):
        v = v.strip()
        if len(v) < 10:
            raise ValueError('Reason description must be between 10 and 1000 characters')
        return v


class ReturnStatusUpdate(CamelModel):
    status: str
    note: Optional[str] = Field(None, max_length=500)
    pickup_date: Optional[datetime] = None
    pickup_time_slot: Optional[str] = None
    tracking_number: Optional[str] = None
    refund_transaction_id: Optional[str] = None
    admin_notes: Optional[str] = None


class ReturnItemResponse(CamelModel):
    id: int
    order_item_id: int
    product_id: Optional[int] = None
    quantity: int
    price: float
    name: str
    image: Optional[str] = None


class ReturnResponse(CamelModel):
    id: int
    return_number: Optional[str] = None
    order_id: int
    user_id: int
    items: List[ReturnItemResponse] = []
    reason: str
    reason_description: str
    refund_amount: float
    refund_method: str
    refund_transaction_id: Optional[str] = None
    pickup_address: Optional[Dict] = None
    pickup_date: Optional[datetime] = None
    pickup_time_slot: Optional[str] = None
    tracking_number: Optional[str] = None
    admin_notes: Optional[str] = None
    images: List[str] = []
    status: str
    status_history: List[StatusHistoryEntry] = []
    timeline: Dict[str, datetime] = {}
    picked_up_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

from typing import List, Optional

from pydantic import Field

from .base import CamelModel


class CartItemAdd(CamelModel):
    product_id: int
    quantity: int = Field(1, ge=1, le=100)


class CartItemUpdate(CamelModel):
    quantity: int = Field(..., le=100)


class CartItemResponse(CamelModel):
    id: int
    product_id: int
    quantity: int
    price: float
    name: Optional[str] = None
    image: Optional[str] = None


class CartResponse(CamelModel):
    id: Optional[int] = None
    items: List[CartItemResponse] = []
    subtotal: float = 0
    delivery_fee: float = 0
    taxes: float = 0
    total: float = 0

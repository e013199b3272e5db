from datetime import datetime
from typing import List, Optional

from pydantic import Field, validator

from ..models.product import PRODUCT_CATEGORIES
from .base import CamelModel


def _category(v):
    if v is not None and v not in PRODUCT_CATEGORIES:
        raise ValueError(f'Category must be one of: {", ".join(PRODUCT_CATEGORIES)}')
    return v


class ProductCreate(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    brand: str = Field(..., min_length=1, max_length=255)
    sku: str = Field(..., min_length=1, max_length=100)
    price: float = Field(..., ge=0)
    mrp: float = Field(..., ge=0)
    stock: int = Field(0, ge=0)
    description: str
    images: List[str] = []
    category: Optional[str] = None
    is_active: bool = True

    @validator('sku')
    def upper_sku(cls, v):
        return v.strip().upper()

    @validator('category')
    def validate_category(cls, v):
        return _category(v)


class ProductUpdate(CamelModel):
    name: Optional[str] = None
    brand: Optional[str] = None
    price: Optional[float] = Field(None, ge=0)
    mrp: Optional[float] = Field(None, ge=0)
    stock: Optional[int] = Field(None, ge=0)
    description: Optional[str] = None
    images: Optional[List[str]] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None

    @validator('category')
    def validate_category(cls, v):
        return _category(v)


class ProductResponse(CamelModel):
    id: int
    name: str
    brand: str
    sku: str
    price: float
    mrp: float
    stock: int
    description: str
    images: List[str] = []
    category: Optional[str] = None
    is_active: bool
    discount_percentage: int
    in_stock: bool
    created_at: Optional[datetime] = None

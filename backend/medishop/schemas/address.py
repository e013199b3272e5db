from datetime import datetime
from typing import Optional

from pydantic import Field

from .base import CamelModel
from .order import ShippingAddress


class AddressInput(ShippingAddress):
    label: str = Field("Home", min_length=1, max_length=50)
    name: str = Field(..., min_length=2, max_length=100)
    address: str = Field(..., min_length=5, max_length=500)
    is_default: bool = False
    set_as_default: bool = False

    @property
    def wants_default(self) -> bool:
        return self.is_default or self.set_as_default

    def columns(self) -> dict:
        return self.model_dump(exclude={"is_default", "set_as_default"})


class AddressResponse(CamelModel):
    id: int
    label: str
    name: str
    phone_number: str
    address: str
    city: str
    state: str
    pincode: str
    landmark: Optional[str] = ""
    is_default: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

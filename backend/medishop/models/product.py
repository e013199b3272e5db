from sqlalchemy import Column, Integer, String, Boolean, DateTime, Float, Text, JSON, CheckConstraint
from sqlalchemy.sql import func

from ..database import Base

PRODUCT_CATEGORIES = (
    "Prescription Medicines",
    "OTC Medicines",
    "Wellness Products",
    "Personal Care",
    "Health Supplements",
    "Baby Care",
    "Medical Devices",
    "Ayurvedic Products",
)


class Product(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    brand = Column(String(255), nullable=False)
    sku = Column(String(100), unique=True, nullable=False, index=True)
    price = Column(Float, nullable=False)
    mrp = Column(Float, nullable=False)
    stock = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)
    images = Column(JSON, nullable=False, default=list)
    category = Column(String(50), nullable=True, index=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_product_stock"),
        CheckConstraint("price >= 0 AND mrp >= 0", name="check_product_price"),
    )

    @property
    def discount_percentage(self) -> int:
        if self.mrp and self.mrp > 0 and self.price < self.mrp:
            return round((self.mrp - self.price) / self.mrp * 100)
        return 0

    @property
    def in_stock(self) -> bool:
        return bool(self.is_active) and (self.stock or 0) > 0

    @property
    def primary_image(self) -> str:
        return self.images[0] if self.images else ""

from sqlalchemy import Column, Integer, String, DateTime, Float, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..config import settings
from ..database import Base


def price_breakdown(subtotal: float) -> dict:
    """Delivery fee, taxes and total for a subtotal"""
    if subtotal <= 0:
        delivery_fee = 0
    else:
        delivery_fee = 0 if subtotal >= settings.FREE_DELIVERY_THRESHOLD else settings.DELIVERY_FEE
    taxes = round(subtotal * settings.TAX_RATE)
    return {
        "subtotal": subtotal,
        "delivery_fee": delivery_fee,
        "taxes": taxes,
        "total": subtotal + delivery_fee + taxes
    }


class Cart(Base):
    __tablename__ = "carts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    subtotal = Column(Float, nullable=False, default=0)
    delivery_fee = Column(Float, nullable=False, default=0)
    taxes = Column(Float, nullable=False, default=0)
    total = Column(Float, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    items = relationship(
        "CartItem",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItem.id"
    )

    def find_item(self, product_id: int):
        return next((item for item in self.items if item.product_id == product_id), None)

    def calculate_totals(self):
        totals = price_breakdown(sum(item.price * item.quantity for item in self.items))
        for key, value in totals.items():
            setattr(self, key, value)
        return self

    def add_item(self, product, quantity: int):
        item = self.find_item(product.id)
        if item:
            item.quantity += quantity
            item.price = product.price
        else:
            self.items.append(CartItem(
                product_id=product.id,
                quantity=quantity,
                price=product.price,
                name=product.name,
                image=product.primary_image
            ))
        return self.calculate_totals()

    def update_item_quantity(self, product_id: int, quantity: int) -> bool:
        item = self.find_item(product_id)
        if not item:
            return False
        if quantity <= 0:
            self.items.remove(item)
        else:
            item.quantity = quantity
        self.calculate_totals()
        return True

    def remove_item(self, product_id: int):
        self.items = [item for item in self.items if item.product_id != product_id]
        return self.calculate_totals()

    def clear(self):
        self.items = []
        return self.calculate_totals()


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True, index=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Float, nullable=False)
    name = Column(String(255), nullable=True)
    image = Column(String(500), nullable=True)

    cart = relationship("Cart", back_populates="items")
    product = relationship("Product")

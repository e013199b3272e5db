"""
Order Service
Order placement from the cart or an explicit item list, customer cancellation
and the admin status workflow
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import InsufficientStock, NotFound, ValidationFailed
from ..models.cart import Cart, price_breakdown
from ..models.order import CANCELLABLE_STATUSES, ORDER_MACHINE, PAYMENT_METHODS, Order, OrderItem
from ..models.prescription import ORDER_TO_PRESCRIPTION_STATUS, ORDERABLE_STATUSES, Prescription
from ..models.product import Product
from ..utils.helpers import generate_reference
from .file_storage import LocalFileStorage
from .status_history import apply_transition, commit_or_conflict

logger = logging.getLogger(__name__)

TOTAL_FIELDS = ("subtotal", "delivery_fee", "taxes", "total")


class OrderLine:
    """A priced line resolved against the product table, not yet persisted"""

    def __init__(self, product: Product, quantity: int, price: float, cart_item=None):
        self.product = product
        self.quantity = quantity
        self.price = price
        self.cart_item = cart_item

    def to_order_item(self) -> OrderItem:
        return OrderItem(
            product_id=self.product.id,
            quantity=self.quantity,
            price=self.price,
            name=self.product.name,
            image=self.product.primary_image
        )


def stock_failure(product: Optional[Product], product_id: int, requested: int) -> Optional[dict]:
    """Describe why a line cannot be fulfilled, None when it can"""
    if product is None:
        return {"productId": product_id, "requested": requested, "available": 0,
                "message": "Product not found"}
    if not product.is_active:
        return {"productId": product.id, "name": product.name, "requested": requested,
                "available": 0, "message": f"{product.name} is no longer available"}
    if product.stock < requested:
        return {"productId": product.id, "name": product.name, "requested": requested,
                "available": product.stock, "message": f"Insufficient stock for {product.name}"}
    return None


class OrderService:
    def __init__(self, db: Session, storage: Optional[LocalFileStorage] = None):
        self.db = db
        self.storage = storage

    # ========== LINE RESOLUTION ==========

    def resolve_items(self, items: List[dict]) -> List[OrderLine]:
        """Explicit [{product_id, quantity}] lines, priced from the catalog"""
        if not items:
            raise ValidationFailed("At least one item is required")

        quantities: Dict[int, int] = {}
        for item in items:
            quantity = int(item.get("quantity") or 0)
            if quantity <= 0:
                raise ValidationFailed(
                    "Quantity must be a positive integer",
                    errors=[{"field": "items", "productId": item.get("product_id")}]
                )
            quantities[item["product_id"]] = quantities.get(item["product_id"], 0) + quantity

        products = {
            p.id: p for p in self.db.query(Product).filter(Product.id.in_(quantities.keys())).all()
        }

        failures, lines = [], []
        for product_id, quantity in quantities.items():
            product = products.get(product_id)
            failure = stock_failure(product, product_id, quantity)
            if failure:
                failures.append(failure)
            else:
                lines.append(OrderLine(product, quantity, product.price))

        if failures:
            raise InsufficientStock(self._stock_message(failures), errors=failures)
        return lines

    def resolve_cart(self, cart: Optional[Cart], selected_items: Optional[List[dict]] = None) -> List[OrderLine]:
        """Lines from the persisted cart, optionally a subset of it"""
        if cart is None or not cart.items:
            raise ValidationFailed("Cart is empty")

        if selected_items:
            picked = self._select_cart_items(cart, selected_items)
        else:
            picked = [(item, item.quantity) for item in cart.items]

        failures, lines = [], []
        for cart_item, quantity in picked:
            product = self.db.query(Product).filter(Product.id == cart_item.product_id).first()
            failure = stock_failure(product, cart_item.product_id, quantity)
            if failure:
                failures.append(failure)
            else:
                lines.append(OrderLine(product, quantity, cart_item.price, cart_item=cart_item))

        if failures:
            raise InsufficientStock(self._stock_message(failures), errors=failures)
        return lines

    def _select_cart_items(self, cart: Cart, selected_items: List[dict]) -> list:
        picked, seen = [], set()
        for selection in selected_items:
            cart_item_id = selection.get("cart_item_id")
            product_id = selection.get("product_id")
            if cart_item_id is None and product_id is None:
                raise ValidationFailed("Each selected item must include cartItemId or productId")

            cart_item = None
            if cart_item_id is not None:
                cart_item = next((i for i in cart.items if i.id == cart_item_id), None)
            if cart_item is None and product_id is not None:
                cart_item = cart.find_item(product_id)
            if cart_item is None:
                raise ValidationFailed(
                    "Selected item is not present in your cart",
                    errors=[{"cartItemId": cart_item_id, "productId": product_id}]
                )

            if cart_item.id in seen:
                raise ValidationFailed("Duplicate cart selection detected")
            seen.add(cart_item.id)

            quantity = selection.get("quantity")
            quantity = cart_item.quantity if quantity is None else int(quantity)
            if quantity <= 0:
                raise ValidationFailed("Quantity must be a positive integer")
            if quantity > cart_item.quantity:
                raise ValidationFailed(
                    "Selected quantity exceeds what is in your cart",
                    errors=[{"cartItemId": cart_item.id, "requested": quantity,
                             "available": cart_item.quantity}]
                )
            picked.append((cart_item, quantity))
        return picked

    @staticmethod
    def _stock_message(failures: List[dict]) -> str:
        names = ", ".join(str(f.get("name") or f["productId"]) for f in failures)
        return f"Some items are unavailable or out of stock: {names}"

    # ========== STOCK ==========

    def _reserve_stock(self, lines: List[OrderLine]):
        """Conditional decrement per line; any miss aborts the whole placement"""
        failures = []
        for line in lines:
            updated = self.db.query(Product).filter(
                Product.id == line.product.id,
                Product.is_active == True,  # noqa: E712
                Product.stock >= line.quantity
            ).update({Product.stock: Product.stock - line.quantity}, synchronize_session=False)
            if not updated:
                failures.append({
                    "productId": line.product.id,
                    "name": line.product.name,
                    "requested": line.quantity,
                    "message": f"Insufficient stock for {line.product.name}"
                })
        if failures:
            raise InsufficientStock(self._stock_message(failures), errors=failures)

    def _restore_stock(self, items):
        for item in items:
            if item.product_id is None:
                continue
            self.db.query(Product).filter(Product.id == item.product_id).update(
                {Product.stock: Product.stock + item.quantity}, synchronize_session=False
            )

    # ========== PLACEMENT ==========

    def _totals(self, lines: List[OrderLine], client_totals: Optional[dict]) -> dict:
        computed = price_breakdown(sum(line.price * line.quantity for line in lines))
        if not client_totals or all(client_totals.get(k) is None for k in TOTAL_FIELDS):
            return computed

        # Client supplied totals are accepted as sent
        totals = {k: client_totals[k] if client_totals.get(k) is not None else computed[k]
                  for k in TOTAL_FIELDS}
        mismatched = [k for k in TOTAL_FIELDS if abs(totals[k] - computed[k]) > 0.01]
        if mismatched:
            logger.warning(
                f"Client supplied order totals differ from computed totals on "
                f"{', '.join(mismatched)}: client={totals} computed={computed}"
            )
        return totals

    def _build_order(self, user_id: int, lines: List[OrderLine], actor, **fields) -> Order:
        order = Order(
            user_id=user_id,
            items=[line.to_order_item() for line in lines],
            created_by=actor,
            **fields
        )
        self.db.add(order)
        self.db.flush()
        order.order_number = generate_reference("ORD", order.id)
        self._reserve_stock(lines)
        return order

    async def place_order(
        self,
        user,
        shipping_address: dict,
        payment_method: str = "COD",
        items: Optional[List[dict]] = None,
        selected_items: Optional[List[dict]] = None,
        prescription_file: Optional[UploadFile] = None,
        prescription_url: Optional[str] = None,
        client_totals: Optional[dict] = None,
        notes: Optional[str] = None
    ) -> Order:
        """
        Place an order for a customer.

        Lines come from `items` when given, otherwise from the customer's
        cart. Every line is checked before anything is written; stock is
        then decremented with conditional updates in the same transaction,
        so a failing line leaves no order, no stock change and no cart change.
        """
        payment_method = (payment_method or "COD").upper()
        if payment_method not in PAYMENT_METHODS:
            raise ValidationFailed(
                "Invalid payment method",
                errors=[{"field": "paymentMethod", "allowed": list(PAYMENT_METHODS)}]
            )

        has_file = prescription_file is not None and bool(prescription_file.filename)
        if settings.ORDER_REQUIRES_PRESCRIPTION and not has_file and not prescription_url:
            raise ValidationFailed(
                "Prescription is required",
                errors=[{"field": "prescription", "message": "Upload a file or provide prescriptionUrl"}]
            )

        cart = self.db.query(Cart).filter(Cart.user_id == user.id).first()
        if items:
            lines = self.resolve_items(items)
        else:
            lines = self.resolve_cart(cart, selected_items)

        totals = self._totals(lines, client_totals)

        stored = None
        if has_file:
            stored = await self.storage.store(prescription_file, folder="orders")
            prescription_url = stored["url"]

        try:
            order = self._build_order(
                user.id,
                lines,
                actor=user,
                status_note="Order placed",
                shipping_address=shipping_address,
                payment_method=payment_method,
                payment_status="pending",
                source="catalog",
                prescription_url=prescription_url,
                prescription_public_id=stored["public_id"] if stored else None,
                notes=notes,
                **totals
            )

            if not items and cart is not None:
                self._update_cart_after_checkout(cart, lines, partial=bool(selected_items))

            self.db.commit()
        except Exception:
            self.db.rollback()
            if stored:
                self.storage.delete_quietly(stored["public_id"])
            raise

        self.db.refresh(order)
        logger.info(
            f"Order {order.order_number} placed by user {user.id}: "
            f"{len(lines)} line(s), total {order.total}"
        )
        return order

    def _update_cart_after_checkout(self, cart: Cart, lines: List[OrderLine], partial: bool):
        if not partial:
            cart.clear()
            return
        for line in lines:
            item = line.cart_item
            if line.quantity >= item.quantity:
                cart.items.remove(item)
            else:
                item.quantity -= line.quantity
        cart.calculate_totals()

    def create_from_prescription(
        self,
        admin,
        prescription: Prescription,
        items: List[dict],
        shipping_address: dict,
        payment_method: str = "COD",
        notes: Optional[str] = None
    ) -> Order:
        """Raise a confirmed order for an approved prescription"""
        if prescription.status not in ORDERABLE_STATUSES:
            raise ValidationFailed(
                f"Prescription must be approved before ordering (current status: {prescription.status})"
            )
        if prescription.order_id is not None:
            raise ValidationFailed("An order already exists for this prescription")

        payment_method = (payment_method or "COD").upper()
        if payment_method not in PAYMENT_METHODS:
            raise ValidationFailed("Invalid payment method")

        lines = self.resolve_items(items)

        try:
            order = self._build_order(
                prescription.user_id,
                lines,
                actor=admin,
                status="confirmed",
                status_note=f"Created from prescription #{prescription.id}",
                shipping_address=shipping_address,
                payment_method=payment_method,
                payment_status="pending",
                source="prescription",
                prescription_id=prescription.id,
                prescription_url=prescription.file_url,
                notes=notes,
                **price_breakdown(sum(line.price * line.quantity for line in lines))
            )

            prescription.order_id = order.id
            prescription.shipping_address_snapshot = shipping_address
            if prescription.status != "ordered":
                apply_transition(prescription, "ordered", actor=admin,
                                 note=f"Order {order.order_number} created")
            commit_or_conflict(self.db)
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(order)
        logger.info(f"Order {order.order_number} created from prescription {prescription.id}")
        return order

    # ========== QUERIES ==========

    def list_orders(
        self,
        user_id: Optional[int] = None,
        status: Optional[str] = None,
        source: Optional[str] = None,
        date_from: Optional[datetime] = None,
        date_to: Optional[datetime] = None,
        page: int = 1,
        limit: int = 20
    ):
        query = self.db.query(Order)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == ORDER_MACHINE.normalize(status))
        if source:
            query = query.filter(Order.source == source)
        if date_from:
            query = query.filter(Order.created_at >= date_from)
        if date_to:
            query = query.filter(Order.created_at <= date_to)

        total = query.count()
        orders = query.order_by(Order.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return orders, total

    def get_order(self, order_id: int, user_id: Optional[int] = None) -> Order:
        query = self.db.query(Order).filter(Order.id == order_id)
        if user_id is not None:
            query = query.filter(Order.user_id == user_id)
        order = query.first()
        if not order:
            raise NotFound("Order not found")
        return order

    # ========== STATUS CHANGES ==========

    def _enter_status(self, order: Order, status: str, actor, note: Optional[str]):
        was_cancelled = order.cancelled_at is not None
        apply_transition(order, status, actor=actor, note=note)

        # Stock goes back once, the first time an order is cancelled
        if order.status == "cancelled" and not was_cancelled:
            self._restore_stock(order.items)

        self._sync_prescription(order, actor)

    def _sync_prescription(self, order: Order, actor):
        if order.prescription_id is None:
            return
        target = ORDER_TO_PRESCRIPTION_STATUS.get(order.status)
        if target is None:
            return
        prescription = self.db.query(Prescription).filter(Prescription.id == order.prescription_id).first()
        if prescription and prescription.status != target:
            apply_transition(
                prescription, target, actor=actor,
                note=f"Order {order.order_number} moved to {order.status}"
            )

    def cancel_order(self, user, order_id: int, reason: Optional[str] = None) -> Order:
        order = self.get_order(order_id, user_id=user.id)
        if order.status not in CANCELLABLE_STATUSES:
            raise ValidationFailed(f"Order cannot be cancelled once it is {order.status}")

        self._enter_status(order, "cancelled", user, reason or "Cancelled by customer")
        commit_or_conflict(self.db)
        self.db.refresh(order)
        return order

    def update_status(
        self,
        admin,
        order_id: int,
        status: str,
        note: Optional[str] = None,
        tracking_number: Optional[str] = None
    ) -> Order:
        order = self.get_order(order_id)
        self._enter_status(order, status, admin, note)
        if tracking_number:
            order.tracking_number = tracking_number
        commit_or_conflict(self.db)
        self.db.refresh(order)
        return order

"""
Return Service
Return requests against delivered orders, refunds and stock restoration
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound, ValidationFailed
from ..models.order import Order, OrderItem
from ..models.product import Product
from ..models.return_request import (
    CLOSED_STATUSES,
    RETURN_MACHINE,
    USER_CANCELLABLE_STATUSES,
    ReturnItem,
    ReturnRequest,
)
from ..utils.helpers import generate_reference
from .status_history import apply_transition, commit_or_conflict

logger = logging.getLogger(__name__)

# Fields an admin may set alongside a status change
ADMIN_FIELDS = ("pickup_date", "pickup_time_slot", "tracking_number", "refund_transaction_id", "admin_notes")

DUPLICATE_RETURN = "A return request already exists for this order"


class ReturnService:
    def __init__(self, db: Session):
        self.db = db

    def _active_return(self, order_id: int) -> Optional[ReturnRequest]:
        return self.db.query(ReturnRequest).filter(
            ReturnRequest.order_id == order_id,
            ReturnRequest.status.notin_(CLOSED_STATUSES)
        ).first()

    def create_return(
        self,
        user,
        order_id: int,
        items: List[dict],
        reason: str,
        reason_description: str,
        refund_method: str = "original",
        images: Optional[List[str]] = None
    ) -> ReturnRequest:
        order = self.db.query(Order).filter(Order.id == order_id, Order.user_id == user.id).first()
        if not order:
            raise NotFound("Order not found")

        if order.status != "delivered":
            raise ValidationFailed("Only delivered orders can be returned")

        if self._active_return(order.id):
            raise Conflict(DUPLICATE_RETURN)

        # Repeated lines for the same order item count against one cap
        quantities: Dict[int, int] = {}
        for requested in items:
            order_item_id = requested["order_item_id"]
            quantities[order_item_id] = quantities.get(order_item_id, 0) + requested["quantity"]

        order_items = {item.id: item for item in order.items}
        return_items = []
        for order_item_id, quantity in quantities.items():
            order_item: OrderItem = order_items.get(order_item_id)
            if order_item is None:
                raise ValidationFailed(f"Order item {order_item_id} not found")
            if quantity > order_item.quantity:
                raise ValidationFailed(
                    f"Return quantity cannot exceed ordered quantity for {order_item.name}",
                    errors=[{"orderItemId": order_item_id, "requested": quantity,
                             "ordered": order_item.quantity}]
                )
            return_items.append(ReturnItem(
                order_item_id=order_item.id,
                product_id=order_item.product_id,
                quantity=quantity,
                price=order_item.price,
                name=order_item.name,
                image=order_item.image
            ))

        if not return_items:
            raise ValidationFailed("At least one item must be returned")

        return_request = ReturnRequest(
            order_id=order.id,
            user_id=user.id,
            items=return_items,
            reason=reason,
            reason_description=reason_description,
            refund_method=refund_method,
            refund_amount=0,
            pickup_address=order.shipping_address,
            images=images or [],
            created_by=user,
            status_note="Return requested"
        )
        return_request.refund_amount = return_request.calculate_refund()

        try:
            self.db.add(return_request)
            self.db.flush()
            return_request.return_number = generate_reference("RET", return_request.id)
            self.db.commit()
        except IntegrityError:
            # Lost the race against another request for the same order
            self.db.rollback()
            raise Conflict(DUPLICATE_RETURN)

        self.db.refresh(return_request)
        logger.info(
            f"Return {return_request.return_number} created for order {order.order_number}, "
            f"refund {return_request.refund_amount}"
        )
        return return_request

    def list_returns(self, user_id: Optional[int] = None, status: Optional[str] = None,
                     page: int = 1, limit: int = 20):
        query = self.db.query(ReturnRequest)
        if user_id is not None:
            query = query.filter(ReturnRequest.user_id == user_id)
        if status and status != "all":
            query = query.filter(ReturnRequest.status == RETURN_MACHINE.normalize(status))

        total = query.count()
        returns = query.order_by(ReturnRequest.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return returns, total

    def get_return(self, return_id: int, user_id: Optional[int] = None) -> ReturnRequest:
        query = self.db.query(ReturnRequest).filter(ReturnRequest.id == return_id)
        if user_id is not None:
            query = query.filter(ReturnRequest.user_id == user_id)
        return_request = query.first()
        if not return_request:
            raise NotFound("Return request not found")
        return return_request

    def cancel_return(self, user, return_id: int) -> ReturnRequest:
        return_request = self.get_return(return_id, user_id=user.id)
        if return_request.status not in USER_CANCELLABLE_STATUSES:
            raise ValidationFailed("Cannot cancel return request in current status")

        apply_transition(return_request, "cancelled", actor=user, note="Cancelled by customer")
        commit_or_conflict(self.db)
        self.db.refresh(return_request)
        return return_request

    def update_status(self, admin, return_id: int, status: str, note: Optional[str] = None, **fields) -> ReturnRequest:
        """
        Admin transition for a return.

        The first time a return reaches refund_processed or completed the
        returned quantities go back into stock and the order is marked
        refunded. refunded_at is the marker, so a later re-entry does not
        restock twice.
        """
        return_request = self.get_return(return_id)
        already_refunded = return_request.refunded_at is not None

        # Reopening a closed return must not shadow a newer active one
        target = RETURN_MACHINE.normalize(status)
        if return_request.status in CLOSED_STATUSES and target not in CLOSED_STATUSES:
            if self._active_return(return_request.order_id):
                raise Conflict(DUPLICATE_RETURN)

        apply_transition(return_request, target, actor=admin, note=note)

        for field in ADMIN_FIELDS:
            value = fields.get(field)
            if value is not None:
                setattr(return_request, field, value)

        if return_request.refunded_at is not None and not already_refunded:
            for item in return_request.items:
                if item.product_id is None:
                    continue
                self.db.query(Product).filter(Product.id == item.product_id).update(
                    {Product.stock: Product.stock + item.quantity}, synchronize_session=False
                )
            return_request.order.payment_status = "refunded"
            logger.info(
                f"Return {return_request.return_number} refunded, "
                f"{len(return_request.items)} line(s) restocked"
            )

        commit_or_conflict(self.db, DUPLICATE_RETURN)
        self.db.refresh(return_request)
        return return_request

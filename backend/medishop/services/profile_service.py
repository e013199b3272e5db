"""
Profile Service
Customer self-service: profile edits, account statistics and account deletion
"""

import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..models.address import Address
from ..models.cart import Cart
from ..models.order import Order
from ..models.otp import OTP
from ..models.prescription import Prescription
from ..models.return_request import ReturnRequest
from ..models.user import User
from ..schemas.profile import ProfileUpdate
from ..utils.helpers import mask_phone

logger = logging.getLogger(__name__)


class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def update_profile(self, user: User, payload: ProfileUpdate) -> User:
        updates = payload.model_dump(exclude_unset=True)
        if "name" in updates:
            user.name = updates["name"]
        if "email" in updates:
            user.email = updates["email"]
        if updates.get("preferences") is not None:
            user.preferences = updates["preferences"]

        self.db.commit()
        self.db.refresh(user)
        return user

    def stats(self, user: User) -> dict:
        orders_count = self.db.query(func.count(Order.id)).filter(Order.user_id == user.id).scalar() or 0
        prescriptions_count = self.db.query(func.count(Prescription.id)).filter(
            Prescription.user_id == user.id,
            Prescription.is_active == True  # noqa: E712
        ).scalar() or 0
        return {
            "orders_count": orders_count,
            "prescriptions_count": prescriptions_count,
            "member_since": user.created_at
        }

    def _has_history(self, user_id: int) -> bool:
        for model in (Order, Prescription, ReturnRequest):
            if self.db.query(model.id).filter(model.user_id == user_id).first() is not None:
                return True
        return False

    def delete_account(self, user: User) -> bool:
        """
        Close a customer account.

        Orders, prescriptions and returns keep pointing at the user row, so
        an account with any of them is anonymised and blocked instead of
        removed. Returns True when the row itself was deleted.
        """
        phone = user.phone
        self.db.query(Address).filter(Address.user_id == user.id).delete(synchronize_session=False)
        cart = self.db.query(Cart).filter(Cart.user_id == user.id).first()
        if cart is not None:
            self.db.delete(cart)
        self.db.query(OTP).filter(OTP.phone == phone).delete(synchronize_session=False)
        self.db.flush()

        if self._has_history(user.id):
            user.phone = f"deleted-{user.id}"
            user.name = None
            user.email = None
            user.preferences = None
            user.is_blocked = True
            user.block_reason = "Account deleted by customer"
            removed = False
        else:
            self.db.delete(user)
            removed = True

        self.db.commit()
        logger.info(f"Account for {mask_phone(phone)} closed ({'removed' if removed else 'anonymised'})")
        return removed

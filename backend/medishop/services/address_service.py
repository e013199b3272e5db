"""
Address Book Service
Saved delivery addresses with exactly one default while any exist
"""

import logging
from typing import List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import Conflict, NotFound
from ..models.address import Address
from ..schemas.address import AddressInput

logger = logging.getLogger(__name__)


class AddressService:
    def __init__(self, db: Session):
        self.db = db

    def list_addresses(self, user_id: int) -> List[Address]:
        return self.db.query(Address).filter(Address.user_id == user_id).order_by(Address.id).all()

    def get_address(self, user_id: int, address_id: int) -> Address:
        address = self.db.query(Address).filter(
            Address.id == address_id,
            Address.user_id == user_id
        ).first()
        if not address:
            raise NotFound("Address not found")
        return address

    def default_address_id(self, addresses: List[Address]) -> Optional[int]:
        return next((a.id for a in addresses if a.is_default), None)

    def _clear_default(self, user_id: int):
        self.db.query(Address).filter(
            Address.user_id == user_id,
            Address.is_default == True  # noqa: E712
        ).update({Address.is_default: False})

    def _commit(self):
        try:
            self.db.commit()
        except IntegrityError:
            # Another request moved the default at the same time
            self.db.rollback()
            raise Conflict("Address book was modified concurrently. Please retry.")

    def add_address(self, user_id: int, data: AddressInput) -> Address:
        """The first address, or one flagged as default, becomes the default"""
        has_addresses = self.db.query(Address.id).filter(Address.user_id == user_id).first() is not None
        make_default = data.wants_default or not has_addresses

        if make_default:
            self._clear_default(user_id)

        address = Address(user_id=user_id, is_default=make_default, **data.columns())
        self.db.add(address)
        self._commit()
        self.db.refresh(address)
        logger.info(f"Address {address.id} added for user {user_id} (default: {make_default})")
        return address

    def update_address(self, user_id: int, address_id: int, data: AddressInput) -> Address:
        address = self.get_address(user_id, address_id)
        for field, value in data.columns().items():
            setattr(address, field, value)

        if data.wants_default and not address.is_default:
            self._clear_default(user_id)
            address.is_default = True

        self._commit()
        self.db.refresh(address)
        return address

    def set_default(self, user_id: int, address_id: int) -> Address:
        address = self.get_address(user_id, address_id)
        if not address.is_default:
            self._clear_default(user_id)
            address.is_default = True
            self._commit()
            self.db.refresh(address)
        return address

    def delete_address(self, user_id: int, address_id: int):
        """Remove an address; deleting the default promotes the oldest remaining one"""
        address = self.get_address(user_id, address_id)
        was_default = address.is_default

        self.db.delete(address)
        self.db.flush()

        if was_default:
            successor = self.db.query(Address).filter(
                Address.user_id == user_id
            ).order_by(Address.id).first()
            if successor is not None:
                successor.is_default = True

        self._commit()
        logger.info(f"Address {address_id} deleted for user {user_id}")

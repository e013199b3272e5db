from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..schemas.address import AddressInput, AddressResponse
from ..schemas.base import dump, envelope
from ..services.address_service import AddressService
from ..utils.security import get_current_user

router = APIRouter(prefix="/addresses", tags=["Addresses"])


def address_book(service: AddressService, user: User, message: str = None) -> dict:
    """Every address call answers with the whole book and the default id"""
    addresses = service.list_addresses(user.id)
    return envelope(
        {
            "addresses": [dump(AddressResponse, a) for a in addresses],
            "defaultAddressId": service.default_address_id(addresses)
        },
        message
    )


@router.get("")
async def list_addresses(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return address_book(AddressService(db), current_user)


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_address(
    payload: AddressInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Save an address; the first one becomes the default"""
    service = AddressService(db)
    service.add_address(current_user.id, payload)
    return address_book(service, current_user, "Address saved")


@router.put("/{address_id}")
async def update_address(
    address_id: int,
    payload: AddressInput,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = AddressService(db)
    service.update_address(current_user.id, address_id, payload)
    return address_book(service, current_user, "Address updated")


@router.patch("/{address_id}/default")
async def set_default_address(
    address_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = AddressService(db)
    service.set_default(current_user.id, address_id)
    return address_book(service, current_user, "Default address updated")


@router.delete("/{address_id}")
async def delete_address(
    address_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    service = AddressService(db)
    service.delete_address(current_user.id, address_id)
    return address_book(service, current_user, "Address deleted")

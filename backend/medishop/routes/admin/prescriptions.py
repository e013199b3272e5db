from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ...database import get_db
from ...models.admin import Admin
from ...schemas.base import dump, envelope
from ...schemas.order import OrderResponse, PrescriptionOrderCreate
from ...schemas.prescription import PrescriptionAssign, PrescriptionResponse, PrescriptionStatusUpdate
from ...services.order_service import OrderService
from ...services.prescription_service import PrescriptionService
from ...utils.security import get_current_admin
from ..products import pagination

router = APIRouter(prefix="/admin/prescriptions", tags=["Admin Prescriptions"])


@router.get("")
async def list_prescriptions(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    records, total = PrescriptionService(db).list_prescriptions(status=status, page=page, limit=limit)
    return envelope(
        [dump(PrescriptionResponse, p) for p in records],
        pagination=pagination(page, limit, total)
    )


@router.get("/{prescription_id}")
async def get_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    record = PrescriptionService(db).get_prescription(prescription_id)
    return envelope(dump(PrescriptionResponse, record))


@router.put("/{prescription_id}/assign")
async def assign_prescription(
    prescription_id: int,
    payload: Optional[PrescriptionAssign] = None,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Assign to an admin (defaults to the caller); submitted ones move to in_review"""
    record = PrescriptionService(db).assign(
        current_admin, prescription_id, payload.admin_id if payload else None
    )
    return envelope(dump(PrescriptionResponse, record), "Prescription assigned")


@router.put("/{prescription_id}/status")
async def update_prescription_status(
    prescription_id: int,
    payload: PrescriptionStatusUpdate,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    record = PrescriptionService(db).update_status(
        current_admin,
        prescription_id,
        payload.status,
        note=payload.note,
        pharmacist_notes=payload.pharmacist_notes
    )
    return envelope(dump(PrescriptionResponse, record), "Prescription status updated successfully")


@router.post("/{prescription_id}/order", status_code=status.HTTP_201_CREATED)
async def create_order_from_prescription(
    prescription_id: int,
    payload: PrescriptionOrderCreate,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Raise a confirmed order for an approved prescription"""
    prescription = PrescriptionService(db).get_prescription(prescription_id)
    order = OrderService(db).create_from_prescription(
        current_admin,
        prescription,
        items=[i.model_dump() for i in payload.items],
        shipping_address=payload.shipping_address.model_dump(by_alias=True),
        payment_method=payload.payment_method,
        notes=payload.notes
    )
    return envelope(dump(OrderResponse, order), "Order created from prescription")


@router.delete("/{prescription_id}")
async def delete_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    current_admin: Admin = Depends(get_current_admin)
):
    """Soft delete"""
    PrescriptionService(db).deactivate(current_admin, prescription_id)
    return envelope(message="Prescription deleted successfully")

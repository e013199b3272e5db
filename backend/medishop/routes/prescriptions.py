from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..schemas.base import dump, envelope
from ..schemas.prescription import PrescriptionResponse
from ..services.file_storage import LocalFileStorage, get_file_storage
from ..services.prescription_service import PrescriptionService
from ..utils.security import get_current_user
from .products import pagination

router = APIRouter(prefix="/prescriptions", tags=["Prescriptions"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_prescription(
    prescription: UploadFile = File(...),
    description: Optional[str] = Form(None),
    doctor_name: Optional[str] = Form(None, alias="doctorName"),
    patient_name: Optional[str] = Form(None, alias="patientName"),
    db: Session = Depends(get_db),
    storage: LocalFileStorage = Depends(get_file_storage),
    current_user: User = Depends(get_current_user)
):
    """Upload a prescription image or PDF"""
    record = await PrescriptionService(db, storage).upload(
        current_user,
        prescription,
        description=description,
        doctor_name=doctor_name,
        patient_name=patient_name
    )
    return envelope(dump(PrescriptionResponse, record), "Prescription uploaded successfully")


@router.get("")
async def list_my_prescriptions(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    records, total = PrescriptionService(db).list_prescriptions(
        user_id=current_user.id, status=status, page=page, limit=limit
    )
    return envelope(
        [dump(PrescriptionResponse, p) for p in records],
        pagination=pagination(page, limit, total)
    )


@router.get("/{prescription_id}")
async def get_my_prescription(
    prescription_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    record = PrescriptionService(db).get_prescription(prescription_id, user_id=current_user.id)
    return envelope(dump(PrescriptionResponse, record))

"""
Prescription Service
Upload, review and assignment of customer prescriptions
"""

import logging
from typing import Optional

from fastapi import UploadFile
from sqlalchemy.orm import Session

from ..errors import NotFound
from ..models.admin import Admin
from ..models.prescription import PRESCRIPTION_MACHINE, Prescription
from .file_storage import LocalFileStorage
from .status_history import apply_transition, commit_or_conflict

logger = logging.getLogger(__name__)


class PrescriptionService:
    def __init__(self, db: Session, storage: Optional[LocalFileStorage] = None):
        self.db = db
        self.storage = storage

    async def upload(
        self,
        user,
        upload: UploadFile,
        description: Optional[str] = None,
        doctor_name: Optional[str] = None,
        patient_name: Optional[str] = None
    ) -> Prescription:
        stored = await self.storage.store(upload, folder="prescriptions")

        try:
            prescription = Prescription(
                user_id=user.id,
                file_name=stored["file_name"],
                original_name=stored["original_name"],
                file_url=stored["url"],
                storage_public_id=stored["public_id"],
                storage=stored["storage"],
                file_type=stored["content_type"],
                file_size=stored["size"],
                description=description,
                doctor_name=doctor_name,
                patient_name=patient_name,
                is_active=True,
                created_by=user,
                status_note="Prescription uploaded"
            )
            self.db.add(prescription)
            self.db.commit()
        except Exception:
            self.db.rollback()
            self.storage.delete_quietly(stored["public_id"])
            raise

        self.db.refresh(prescription)
        logger.info(f"Prescription {prescription.id} uploaded by user {user.id}")
        return prescription

    def list_prescriptions(self, user_id: Optional[int] = None, status: Optional[str] = None,
                           page: int = 1, limit: int = 20):
        query = self.db.query(Prescription).filter(Prescription.is_active == True)  # noqa: E712
        if user_id is not None:
            query = query.filter(Prescription.user_id == user_id)
        if status and status != "all":
            query = query.filter(Prescription.status == PRESCRIPTION_MACHINE.normalize(status))

        total = query.count()
        prescriptions = query.order_by(Prescription.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return prescriptions, total

    def get_prescription(self, prescription_id: int, user_id: Optional[int] = None) -> Prescription:
        query = self.db.query(Prescription).filter(
            Prescription.id == prescription_id,
            Prescription.is_active == True  # noqa: E712
        )
        if user_id is not None:
            query = query.filter(Prescription.user_id == user_id)
        prescription = query.first()
        if not prescription:
            raise NotFound("Prescription not found")
        return prescription

    def assign(self, admin, prescription_id: int, admin_id: Optional[int] = None) -> Prescription:
        prescription = self.get_prescription(prescription_id)
        assignee_id = admin_id or admin.id
        if not self.db.query(Admin).filter(Admin.id == assignee_id).first():
            raise NotFound("Admin not found")

        prescription.assigned_to = assignee_id
        if prescription.status == "submitted":
            apply_transition(prescription, "in_review", actor=admin,
                             note=f"Assigned to admin {assignee_id}")
        commit_or_conflict(self.db)
        self.db.refresh(prescription)
        return prescription

    def update_status(self, admin, prescription_id: int, status: str, note: Optional[str] = None,
                      pharmacist_notes: Optional[str] = None) -> Prescription:
        prescription = self.get_prescription(prescription_id)
        apply_transition(prescription, status, actor=admin, note=note)

        if prescription.status in ("approved", "rejected"):
            prescription.processed_by = admin.id
        if pharmacist_notes is not None:
            prescription.pharmacist_notes = pharmacist_notes

        commit_or_conflict(self.db)
        self.db.refresh(prescription)
        return prescription

    def deactivate(self, admin, prescription_id: int) -> Prescription:
        """Soft delete; the stored file is kept"""
        prescription = self.get_prescription(prescription_id)
        prescription.is_active = False
        commit_or_conflict(self.db)
        logger.info(f"Prescription {prescription_id} deactivated by admin {admin.id}")
        return prescription

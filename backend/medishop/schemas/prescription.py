from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from .base import CamelModel
from .order import StatusHistoryEntry


class PrescriptionAssign(CamelModel):
    admin_id: Optional[int] = None


class PrescriptionStatusUpdate(CamelModel):
    status: str
    note: Optional[str] = Field(None, max_length=500)
    pharmacist_notes: Optional[str] = None


class PrescriptionResponse(CamelModel):
    id: int
    user_id: int
    file_name: str
    original_name: str
    file_url: str
    storage: str
    file_type: str
    file_size: int
    file_extension: str
    description: Optional[str] = None
    doctor_name: Optional[str] = None
    patient_name: Optional[str] = None
    pharmacist_notes: Optional[str] = None
    assigned_to: Optional[int] = None
    processed_by: Optional[int] = None
    processed_at: Optional[datetime] = None
    order_id: Optional[int] = None
    status: str
    status_history: List[StatusHistoryEntry] = []
    timeline: Dict[str, datetime] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

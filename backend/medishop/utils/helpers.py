import re
import uuid
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive datetimes (SQLite hands them back without tzinfo)"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value) -> Optional[datetime]:
    """Parse an ISO timestamp stored in a JSON column"""
    if value is None or isinstance(value, datetime):
        return as_utc(value)
    return as_utc(datetime.fromisoformat(value))


def mask_phone(phone: str) -> str:
    """Mask all but the last four digits for log output"""
    if not phone or len(phone) <= 4:
        return "****"
    return "*" * (len(phone) - 4) + phone[-4:]


def sanitize_filename(filename: str) -> str:
    """Sanitize filename for safe storage"""
    # Remove any non-alphanumeric characters except dots, underscores, and hyphens
    filename = re.sub(r'[^\w\s.-]', '', filename or "")
    # Replace spaces with underscores
    filename = filename.replace(' ', '_')
    return filename or "upload"


def generate_reference(prefix: str, number: int) -> str:
    """Human readable document number, e.g. ORD000042"""
    return f"{prefix}{number:06d}"


def generate_file_id() -> str:
    return uuid.uuid4().hex


def client_ip(request) -> Optional[str]:
    """Caller address, honouring the first X-Forwarded-For hop behind a proxy"""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None

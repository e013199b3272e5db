from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from ..schemas.base import dump, envelope
from ..schemas.profile import ProfileResponse, ProfileStats, ProfileUpdate
from ..services.profile_service import ProfileService
from ..utils.security import get_current_user

router = APIRouter(prefix="/profile", tags=["Profile"])


@router.get("")
async def get_profile(current_user: User = Depends(get_current_user)):
    return envelope(dump(ProfileResponse, current_user))


@router.put("")
async def update_profile(
    payload: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Update name, email or notification preferences"""
    user = ProfileService(db).update_profile(current_user, payload)
    return envelope(dump(ProfileResponse, user), "Profile updated")


@router.get("/stats")
async def get_profile_stats(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return envelope(dump(ProfileStats, ProfileService(db).stats(current_user)))


@router.delete("")
async def delete_account(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    ProfileService(db).delete_account(current_user)
    return envelope(message="Account deleted successfully")

from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.children_service import create_profile, get_profile, serialize_profile
from core.db import get_session
from .base import owner_of, success_response

router = APIRouter(prefix="/profile", tags=["Profile"])


class ProfileCreateRequest(BaseModel):
    role: Literal["parent", "child"] = "parent"
    dob: Optional[str] = Field(default=None, max_length=10, description="YYYY-MM-DD")
    tier: Literal["free", "premium", "family"] = "free"


@router.get("", summary="Current user's profile")
async def read_profile(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    profile = get_profile(session, owner_of(current_user))
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return success_response(serialize_profile(profile))


@router.post("", summary="Create the current user's profile")
async def create_my_profile(
    payload: ProfileCreateRequest,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    owner = owner_of(current_user)
    if get_profile(session, owner) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Profile already exists")
    profile = create_profile(session, owner, role=payload.role, dob=payload.dob, tier=payload.tier)
    return success_response(serialize_profile(profile), message="created")

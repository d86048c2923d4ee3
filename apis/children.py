from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.children_service import create_child, join_child, list_children, serialize_child
from core.db import get_session
from core.settings_service import resolve_child_settings, update_child_settings
from .base import owner_of, require_child_access, success_response

router = APIRouter(prefix="/children", tags=["Children"])


class ChildCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    age: int = Field(..., ge=3, le=18)


class ChildJoinRequest(BaseModel):
    invite_code: str = Field(..., min_length=1, max_length=32)


class SettingsUpdateRequest(BaseModel):
    daily_turn_cap: Optional[int] = Field(default=None, gt=0)
    bedtime_start: Optional[str] = Field(default=None, description="HH:MM")
    bedtime_end: Optional[str] = Field(default=None, description="HH:MM")
    subjects: Optional[List[str]] = None


@router.get("", summary="Children owned by the current parent")
async def list_my_children(
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    rows = list_children(session, owner_of(current_user))
    return success_response({"list": [serialize_child(x) for x in rows], "total": len(rows)})


@router.post("", summary="Add a child")
async def add_child(
    payload: ChildCreateRequest,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    child = create_child(session, owner_of(current_user), payload.name, payload.age)
    return success_response(serialize_child(child), message="created")


@router.post("/join", summary="Bind the current account to a child via invite code")
async def join(
    payload: ChildJoinRequest,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    child = join_child(session, payload.invite_code, owner_of(current_user))
    if child is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invalid invite code")
    return success_response(serialize_child(child, include_invite_code=False))


@router.get("/{child_id}/settings", summary="Effective settings of a child")
async def read_settings(
    child_id: str,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    child = require_child_access(session, current_user, child_id)
    return success_response(resolve_child_settings(session, child.id))


@router.put("/{child_id}/settings", summary="Update a child's settings (parent only)")
async def write_settings(
    child_id: str,
    payload: SettingsUpdateRequest,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    child = require_child_access(session, current_user, child_id, parent_only=True)
    data = update_child_settings(
        session,
        child.id,
        daily_turn_cap=payload.daily_turn_cap,
        bedtime_start=payload.bedtime_start,
        bedtime_end=payload.bedtime_end,
        subjects=payload.subjects,
    )
    return success_response(data, message="updated")

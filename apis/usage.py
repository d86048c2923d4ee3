from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.db import get_session
from core.settings_service import resolve_child_settings
from core.usage_service import get_today_usage, serialize_usage, usage_snapshot
from .base import require_child_access, success_response

router = APIRouter(prefix="/usage", tags=["Usage"])


@router.get("/{child_id}/today", summary="Today's usage of a child (UTC day)")
async def today_usage(
    child_id: str,
    session: Session = Depends(get_session),
    current_user: dict = Depends(get_current_user),
):
    child = require_child_access(session, current_user, child_id)
    cap = int(resolve_child_settings(session, child.id)["daily_turn_cap"])
    return success_response(
        {
            "record": serialize_usage(get_today_usage(session, child.id)),
            "snapshot": usage_snapshot(session, child.id, cap),
        }
    )

from datetime import datetime, time, timezone
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from core.ai_service import ProviderConfig, complete_for_child
from core.auth import get_current_user
from core.config import cfg
from core.db import get_session
from core.errors import AIServiceError
from core.events import E, log_event
from core.log import get_logger
from core.prompt_templates import USAGE_KIND_BY_REQUEST_TYPE
from core.settings_service import is_bedtime, is_subject_allowed, resolve_child_settings
from core.usage_service import check_cap, increment_usage, usage_snapshot
from .base import require_child_access, success_response

logger = get_logger(__name__)

router = APIRouter(prefix="/ai", tags=["AI"])


class AICompleteRequest(BaseModel):
    child_id: str = Field(..., min_length=1, max_length=255)
    text: str = Field(..., min_length=1, max_length=2000)
    type: Literal["homework", "story"]
    subject: str = Field(default="", max_length=64)
    seconds_tts: float = Field(default=0, ge=0, allow_inf_nan=False)


def get_provider_config() -> ProviderConfig:
    return ProviderConfig.from_config(cfg)


def _local_time() -> time:
    tz_name = str(cfg.get("app.timezone", "UTC") or "UTC")
    try:
        tz = ZoneInfo(tz_name)
    except ZoneInfoNotFoundError:
        tz = timezone.utc
    return datetime.now(timezone.utc).astimezone(tz).time()


@router.post("/complete", summary="Homework help or story generation for a child")
async def complete(
    payload: AICompleteRequest,
    session: Session = Depends(get_session),
    provider: ProviderConfig = Depends(get_provider_config),
    current_user: dict = Depends(get_current_user),
):
    child = require_child_access(session, current_user, payload.child_id)
    settings = resolve_child_settings(session, child.id)

    if not is_subject_allowed(settings, payload.subject):
        log_event(logger, E.SETTINGS_SUBJECT_BLOCK, child_id=child.id, subject=payload.subject)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"The subject '{payload.subject}' is not enabled for this child",
        )
    if is_bedtime(settings, _local_time()):
        log_event(logger, E.SETTINGS_BEDTIME_BLOCK, child_id=child.id)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"It's bedtime! Come back after {settings['bedtime_end']}",
        )

    cap = int(settings["daily_turn_cap"])
    if not check_cap(session, child.id, cap):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail=f"Daily limit reached ({cap} turns). Try again tomorrow!",
        )

    try:
        result = await run_in_threadpool(complete_for_child, provider, payload.type, payload.text, child.age)
    except AIServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

    increment_usage(
        session,
        child.id,
        USAGE_KIND_BY_REQUEST_TYPE[payload.type],
        amount=1,
        seconds_tts=payload.seconds_tts,
    )
    # 自增后复查；并发请求可能让 turns 超过上限，check_cap 会记 usage.exceed
    cap_reached = not check_cap(session, child.id, cap)
    return success_response(
        {
            "response": result["response"],
            "usage": result["usage"],
            "daily_usage": usage_snapshot(session, child.id, cap),
            "cap_reached": cap_reached,
        }
    )

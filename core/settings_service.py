import re
from datetime import datetime, time, timezone
from typing import Any, Dict, Iterable, List, Optional

from core.config import cfg
from core.errors import ConstraintViolation
from core.events import E, log_event
from core.log import get_logger
from core.models.settings import ChildSettings

logger = get_logger(__name__)

DEFAULT_DAILY_TURN_CAP = 20
DEFAULT_BEDTIME_START = "20:00"
DEFAULT_BEDTIME_END = "07:00"
DEFAULT_SUBJECTS = ["math", "reading", "science", "writing"]

_HHMM = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def default_settings() -> Dict[str, Any]:
    return {
        "daily_turn_cap": int(cfg.get("settings.daily_turn_cap", DEFAULT_DAILY_TURN_CAP)),
        "bedtime_start": str(cfg.get("settings.bedtime_start", DEFAULT_BEDTIME_START)),
        "bedtime_end": str(cfg.get("settings.bedtime_end", DEFAULT_BEDTIME_END)),
        "subjects": list(cfg.get("settings.subjects", DEFAULT_SUBJECTS)),
    }


def parse_hhmm(value: Any) -> time:
    text = str(value or "").strip()
    m = _HHMM.match(text)
    if not m:
        raise ConstraintViolation(f"time must be HH:MM, got {value!r}")
    return time(hour=int(m.group(1)), minute=int(m.group(2)))


def _normalize_cap(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConstraintViolation("daily_turn_cap must be a positive integer")
    return value


def _normalize_subjects(values: Iterable[Any]) -> List[str]:
    if isinstance(values, str) or values is None:
        raise ConstraintViolation("subjects must be a list of strings")
    out: List[str] = []
    for item in values:
        key = str(item or "").strip().lower()
        if not key:
            raise ConstraintViolation("subjects must not contain empty entries")
        if key not in out:
            out.append(key)
    return out


def get_child_settings(session, child_id: str) -> Optional[ChildSettings]:
    return session.query(ChildSettings).filter(ChildSettings.child_id == child_id).first()


def serialize_settings(child_id: str, row: Optional[ChildSettings]) -> Dict[str, Any]:
    data = default_settings()
    data["child_id"] = child_id
    data["is_default"] = row is None
    if row is not None:
        data["daily_turn_cap"] = int(row.daily_turn_cap or data["daily_turn_cap"])
        data["bedtime_start"] = row.bedtime_start or data["bedtime_start"]
        data["bedtime_end"] = row.bedtime_end or data["bedtime_end"]
        if row.subjects is not None:
            data["subjects"] = list(row.subjects)
        data["updated_at"] = row.updated_at.isoformat() if row.updated_at else None
    return data


def resolve_child_settings(session, child_id: str) -> Dict[str, Any]:
    """生效中的设置；没有记录时用默认值补齐（不落库）。"""
    return serialize_settings(child_id, get_child_settings(session, child_id))


def update_child_settings(
    session,
    child_id: str,
    daily_turn_cap: Optional[int] = None,
    bedtime_start: Optional[str] = None,
    bedtime_end: Optional[str] = None,
    subjects: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    child_key = str(child_id or "").strip()
    if not child_key:
        raise ConstraintViolation("child_id must be a non-empty identifier")

    changes: Dict[str, Any] = {}
    if daily_turn_cap is not None:
        changes["daily_turn_cap"] = _normalize_cap(daily_turn_cap)
    if bedtime_start is not None:
        changes["bedtime_start"] = parse_hhmm(bedtime_start).strftime("%H:%M")
    if bedtime_end is not None:
        changes["bedtime_end"] = parse_hhmm(bedtime_end).strftime("%H:%M")
    if subjects is not None:
        changes["subjects"] = _normalize_subjects(subjects)

    now = datetime.now(timezone.utc).replace(tzinfo=None)
    row = get_child_settings(session, child_key)
    if row is None:
        base = default_settings()
        base.update(changes)
        row = ChildSettings(child_id=child_key, created_at=now, **base)
        session.add(row)
    else:
        for key, value in changes.items():
            setattr(row, key, value)
    row.updated_at = now
    session.commit()
    log_event(logger, E.SETTINGS_UPDATE, child_id=child_key, fields=",".join(sorted(changes)) or "-")
    return serialize_settings(child_key, row)


def is_bedtime(settings: Dict[str, Any], local_time: time) -> bool:
    """
    local_time 落在 [bedtime_start, bedtime_end) 内即为就寝时间。
    start > end 表示跨午夜（如 20:00-07:00）；start == end 表示不限制。
    """
    start = parse_hhmm(settings.get("bedtime_start", DEFAULT_BEDTIME_START))
    end = parse_hhmm(settings.get("bedtime_end", DEFAULT_BEDTIME_END))
    current = local_time.replace(second=0, microsecond=0, tzinfo=None)
    if start == end:
        return False
    if start < end:
        return start <= current < end
    return current >= start or current < end


def is_subject_allowed(settings: Dict[str, Any], subject: Optional[str]) -> bool:
    key = str(subject or "").strip().lower()
    allowed = [str(x).strip().lower() for x in (settings.get("subjects") or [])]
    if not key or not allowed:
        return True
    return key in allowed

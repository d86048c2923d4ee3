"""
每日用量台账：按 (child_id, UTC 日期) 记录 turns / stories / seconds_tts。

自增必须是单条存储原生语句（upsert + 列自增），不能先读再写回，
否则两台设备同时提交会丢更新。
"""

import math
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import insert, update
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import IntegrityError

from core.errors import ConstraintViolation
from core.events import E, log_event
from core.log import get_logger
from core.models.usage import Usage

logger = get_logger(__name__)

USAGE_KIND_TURNS = "turns"
USAGE_KIND_STORIES = "stories"
USAGE_KINDS = (USAGE_KIND_TURNS, USAGE_KIND_STORIES)


def _utc_now(now: Optional[datetime] = None) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def today_key(now: Optional[datetime] = None) -> str:
    return _utc_now(now).strftime("%Y-%m-%d")


def _require_child_id(child_id: Any) -> str:
    value = str(child_id or "").strip()
    if not value:
        raise ConstraintViolation("child_id must be a non-empty identifier")
    return value


def _require_kind(kind: Any) -> str:
    value = str(kind or "").strip().lower()
    if value not in USAGE_KINDS:
        raise ConstraintViolation(f"unknown usage kind: {kind!r}")
    return value


def _require_amount(amount: Any) -> int:
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise ConstraintViolation("amount must be an integer")
    if amount < 0:
        raise ConstraintViolation("amount must be >= 0")
    return amount


def _require_seconds(seconds_tts: Any) -> float:
    if isinstance(seconds_tts, bool) or not isinstance(seconds_tts, (int, float)):
        raise ConstraintViolation("seconds_tts must be a number")
    value = float(seconds_tts)
    if not math.isfinite(value) or value < 0:
        raise ConstraintViolation("seconds_tts must be a finite number >= 0")
    return value


def _require_cap(daily_turn_cap: Any) -> int:
    if isinstance(daily_turn_cap, bool) or not isinstance(daily_turn_cap, int) or daily_turn_cap <= 0:
        raise ConstraintViolation("daily_turn_cap must be a positive integer")
    return daily_turn_cap


def _load_usage(session, child_id: str, date_key: str) -> Optional[Usage]:
    return (
        session.query(Usage)
        .populate_existing()
        .filter(Usage.child_id == child_id, Usage.date == date_key)
        .first()
    )


def get_today_usage(session, child_id: str, now: Optional[datetime] = None) -> Optional[Usage]:
    """当天记录；没有则返回 None，不会落一条全 0 的记录。"""
    return _load_usage(session, _require_child_id(child_id), today_key(now))


def _upsert_on_conflict(session, insert_fn, values: Dict[str, Any], kind: str) -> None:
    stmt = insert_fn(Usage).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[Usage.child_id, Usage.date],
        set_={
            kind: getattr(Usage, kind) + getattr(stmt.excluded, kind),
            "seconds_tts": Usage.seconds_tts + stmt.excluded.seconds_tts,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    session.execute(stmt)


def _upsert_on_duplicate_key(session, values: Dict[str, Any], kind: str) -> None:
    stmt = mysql.insert(Usage).values(**values)
    stmt = stmt.on_duplicate_key_update(
        {
            kind: getattr(Usage, kind) + getattr(stmt.inserted, kind),
            "seconds_tts": Usage.seconds_tts + stmt.inserted.seconds_tts,
            "updated_at": stmt.inserted.updated_at,
        }
    )
    session.execute(stmt)


def _increment_or_insert(session, values: Dict[str, Any], kind: str) -> None:
    bump = (
        update(Usage)
        .where(Usage.child_id == values["child_id"], Usage.date == values["date"])
        .values(
            {
                kind: getattr(Usage, kind) + values[kind],
                "seconds_tts": Usage.seconds_tts + values["seconds_tts"],
                "updated_at": values["updated_at"],
            }
        )
        .execution_options(synchronize_session=False)
    )
    if session.execute(bump).rowcount:
        return
    try:
        with session.begin_nested():
            session.execute(insert(Usage).values(**values))
    except IntegrityError:
        # 另一个请求抢先建了当天记录，改走原地自增
        session.execute(bump)


def _dialect_name(session) -> str:
    return session.get_bind().dialect.name


def increment_usage(
    session,
    child_id: str,
    kind: str,
    amount: int = 1,
    seconds_tts: float = 0,
    now: Optional[datetime] = None,
) -> Usage:
    """
    原子地累加当天用量并提交，返回更新后的记录。

    kind=turns 时累加 turns，kind=stories 时累加 stories；seconds_tts 与 kind 无关，
    总是累加。存储层异常原样抛出，这里不做重试。
    """
    child_key = _require_child_id(child_id)
    kind_key = _require_kind(kind)
    amount_value = _require_amount(amount)
    seconds_value = _require_seconds(seconds_tts)

    moment = _utc_now(now)
    date_key = moment.strftime("%Y-%m-%d")
    stamp = moment.replace(tzinfo=None)
    values = {
        "child_id": child_key,
        "date": date_key,
        "turns": amount_value if kind_key == USAGE_KIND_TURNS else 0,
        "stories": amount_value if kind_key == USAGE_KIND_STORIES else 0,
        "seconds_tts": seconds_value,
        "created_at": stamp,
        "updated_at": stamp,
    }

    dialect = _dialect_name(session)
    if dialect == "postgresql":
        _upsert_on_conflict(session, postgresql.insert, values, kind_key)
    elif dialect == "sqlite":
        _upsert_on_conflict(session, sqlite.insert, values, kind_key)
    elif dialect in ("mysql", "mariadb"):
        _upsert_on_duplicate_key(session, values, kind_key)
    else:
        _increment_or_insert(session, values, kind_key)
    session.commit()

    record = _load_usage(session, child_key, date_key)
    log_event(
        logger,
        E.USAGE_CONSUME,
        child_id=child_key,
        date=date_key,
        kind=kind_key,
        amount=amount_value,
        seconds_tts=seconds_value,
        turns=record.turns,
        stories=record.stories,
    )
    return record


def check_cap(session, child_id: str, daily_turn_cap: int, now: Optional[datetime] = None) -> bool:
    """turns < daily_turn_cap 时放行；没有当天记录按 0 计。只读，不加锁。"""
    cap = _require_cap(daily_turn_cap)
    usage = get_today_usage(session, child_id, now=now)
    turns = int(usage.turns or 0) if usage is not None else 0
    allowed = turns < cap
    log_event(logger, E.USAGE_CHECK, child_id=child_id, turns=turns, cap=cap, allowed=allowed)
    if not allowed:
        log_event(logger, E.USAGE_EXCEED, level="warning", child_id=child_id, turns=turns, cap=cap)
    return allowed


def serialize_usage(usage: Optional[Usage]) -> Optional[Dict[str, Any]]:
    if usage is None:
        return None
    return {
        "child_id": usage.child_id,
        "date": usage.date,
        "turns": int(usage.turns or 0),
        "stories": int(usage.stories or 0),
        "seconds_tts": float(usage.seconds_tts or 0),
        "created_at": usage.created_at.isoformat() if usage.created_at else None,
        "updated_at": usage.updated_at.isoformat() if usage.updated_at else None,
    }


def usage_snapshot(session, child_id: str, daily_turn_cap: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    cap = _require_cap(daily_turn_cap)
    usage = get_today_usage(session, child_id, now=now)
    turns = int(getattr(usage, "turns", 0) or 0)
    return {
        "date": today_key(now),
        "limit": cap,
        "turns": turns,
        "stories": int(getattr(usage, "stories", 0) or 0),
        "seconds_tts": float(getattr(usage, "seconds_tts", 0) or 0),
        "remaining": max(0, cap - turns),
    }

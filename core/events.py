"""
core/events.py — 结构化事件日志

格式：event=xxx | key=val | key=val

用法：
    from core.log import get_logger
    from core.events import log_event, E

    logger = get_logger(__name__)
    log_event(logger, E.USAGE_CONSUME, child_id="c1", kind="turns", amount=1)
    # 输出：event=usage.consume | child_id=c1 | kind=turns | amount=1
"""

import logging
from typing import Any


class E:
    """结构化事件类型常量，按功能模块分组。"""

    # ── 认证 Auth ──────────────────────────────────────────────────────────────
    AUTH_TOKEN_VERIFY = "auth.token.verify"
    AUTH_TOKEN_INVALID = "auth.token.invalid"

    # ── 用量 Usage ─────────────────────────────────────────────────────────────
    USAGE_CHECK = "usage.check"
    USAGE_EXCEED = "usage.exceed"
    USAGE_CONSUME = "usage.consume"

    # ── 家长设置 Settings ──────────────────────────────────────────────────────
    SETTINGS_UPDATE = "settings.update"
    SETTINGS_BEDTIME_BLOCK = "settings.bedtime.block"
    SETTINGS_SUBJECT_BLOCK = "settings.subject.block"

    # ── 档案 Profile / Child ───────────────────────────────────────────────────
    PROFILE_CREATE = "profile.create"
    CHILD_CREATE = "child.create"
    CHILD_JOIN = "child.join"

    # ── AI ─────────────────────────────────────────────────────────────────────
    AI_COMPLETE_START = "ai.complete.start"
    AI_COMPLETE_SUCCESS = "ai.complete.success"
    AI_COMPLETE_FAIL = "ai.complete.fail"

    # ── OCR ────────────────────────────────────────────────────────────────────
    OCR_EXTRACT_START = "ocr.extract.start"
    OCR_EXTRACT_SUCCESS = "ocr.extract.success"
    OCR_EXTRACT_FAIL = "ocr.extract.fail"

    # ── 系统 System ────────────────────────────────────────────────────────────
    SYSTEM_STARTUP = "system.startup"
    SYSTEM_DB_INIT = "system.db_init"
    SYSTEM_STORE_UNAVAILABLE = "system.store.unavailable"


def log_event(
    logger: logging.Logger,
    event: str,
    level: str = "info",
    **fields: Any,
) -> None:
    """
    记录结构化事件日志。

        log_event(logger, E.USAGE_EXCEED, level="warning", child_id="c1", cap=5)
        # → event=usage.exceed | child_id=c1 | cap=5
    """
    parts = [f"event={event}"]
    for k, v in fields.items():
        sv = v if isinstance(v, str) else str(v)
        # 单行日志过长时截断
        if len(sv) > 300:
            sv = sv[:297] + "..."
        parts.append(f"{k}={sv}")
    getattr(logger, level)(" | ".join(parts), stacklevel=2)

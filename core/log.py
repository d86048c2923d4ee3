"""
core/log.py — 日志配置

• 每条日志自动带上当前请求的 trace_id（ContextVar 传播，HTTP 中间件负责设置）
• 格式: 时间 [级别] [trace_id] 模块.函数:行号 - 消息
• configure_logging() 幂等，导入时按 cfg 的 log.level / log.file 初始化一次

使用方式：
    from core.log import get_logger
    logger = get_logger(__name__)
"""

import logging
import logging.handlers
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

import colorlog

from core.config import cfg

_trace_id_var: ContextVar[str] = ContextVar("trace_id", default="-")


def _new_trace_id() -> str:
    return uuid.uuid4().hex[:8]


def set_trace_id(tid: Optional[str] = None) -> str:
    """设置当前上下文的 trace_id，返回实际值。"""
    tid = str(tid or "").strip()[:16] or _new_trace_id()
    _trace_id_var.set(tid)
    return tid


_FMT = "%(asctime)s [%(levelname)-5s] [%(trace_id)s] %(name)s.%(funcName)s:%(lineno)d - %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}


class _TraceIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.trace_id = _trace_id_var.get()
        return True


_trace_filter = _TraceIdFilter()

# uvicorn --reload 会重复导入，handler 打标记防止重复添加
_APP_HANDLER_MARKER = "_is_app_log_handler"


def configure_logging(level: str = "INFO", log_file: str = "") -> None:
    root = logging.getLogger()
    if any(getattr(h, _APP_HANDLER_MARKER, False) for h in root.handlers):
        return

    log_level = logging.getLevelName(str(level or "INFO").upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO
    root.setLevel(log_level)

    ch = colorlog.StreamHandler(stream=sys.stdout)
    ch.setFormatter(
        colorlog.ColoredFormatter("%(log_color)s" + _FMT, datefmt=_DATE_FMT, log_colors=_LOG_COLORS)
    )
    ch.setLevel(log_level)
    ch.addFilter(_trace_filter)
    setattr(ch, _APP_HANDLER_MARKER, True)
    root.addHandler(ch)

    if log_file:
        fh = logging.handlers.RotatingFileHandler(
            f"{log_file}.log",
            maxBytes=5 * 1024 * 1024,
            backupCount=7,
            encoding="utf-8",
        )
        fh.setLevel(log_level)
        fh.setFormatter(logging.Formatter(_FMT, datefmt=_DATE_FMT))
        fh.addFilter(_trace_filter)
        setattr(fh, _APP_HANDLER_MARKER, True)
        root.addHandler(fh)


configure_logging(cfg.get("log.level", "INFO"), cfg.get("log.file", ""))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)

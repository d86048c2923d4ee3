"""
core/config.py — YAML 配置加载

• 配置文件路径取环境变量 CONFIG_FILE，默认 ./config.yaml
• 支持 ${VAR} / ${VAR:-default} 形式的环境变量替换
• cfg.get("ai.base_url", default) 按点号路径读取嵌套配置
"""

import os
import re
from typing import Any, Optional

import yaml

VERSION = "1.0.0"
API_BASE = "/api/v1"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::-([^}]*))?\}")


class Config:
    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.getenv("CONFIG_FILE", "config.yaml")
        self.config: dict = {}
        self.reload()

    def replace_env_vars(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self.replace_env_vars(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.replace_env_vars(v) for v in value]
        if not isinstance(value, str):
            return value

        def _sub(match):
            name, default = match.group(1), match.group(2)
            return os.getenv(name, default if default is not None else "")

        return _ENV_PATTERN.sub(_sub, value)

    def reload(self) -> dict:
        data = {}
        if self.config_path and os.path.exists(self.config_path):
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            data = {}
        self.config = self.replace_env_vars(data)
        return self.config

    def get(self, key: str, default: Any = None) -> Any:
        cursor: Any = self.config
        for part in [x for x in str(key or "").split(".") if x]:
            if not isinstance(cursor, dict) or part not in cursor:
                return default
            cursor = cursor[part]
        if cursor is None or cursor == "":
            return default
        return cursor

    def save_config(self) -> None:
        if not self.config_path:
            return
        directory = os.path.dirname(os.path.abspath(self.config_path))
        os.makedirs(directory, exist_ok=True)
        with open(self.config_path, "w", encoding="utf-8") as f:
            yaml.safe_dump(self.config, f, allow_unicode=True, sort_keys=False)


cfg = Config()

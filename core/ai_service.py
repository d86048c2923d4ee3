import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from core.config import cfg
from core.errors import AIServiceError
from core.events import E, log_event
from core.log import get_logger
from core.prompt_templates import build_system_prompt, generation_params

logger = get_logger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
FALLBACK_REPLY = "I'm sorry, I couldn't generate a response. Please try again."


@dataclass(frozen=True)
class ProviderConfig:
    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    model_name: str = DEFAULT_MODEL
    timeout_seconds: int = 60

    @property
    def is_mock(self) -> bool:
        return self.base_url.lower().startswith("mock://") or self.api_key.lower() in ["mock", "mock-key", "test-mock"]

    @classmethod
    def from_config(cls, conf=None) -> "ProviderConfig":
        conf = conf or cfg
        try:
            timeout = int(conf.get("ai.timeout_seconds", 60) or 60)
        except (TypeError, ValueError):
            timeout = 60
        return cls(
            base_url=str(conf.get("ai.base_url", DEFAULT_BASE_URL) or DEFAULT_BASE_URL).strip(),
            api_key=str(conf.get("ai.api_key", "") or "").strip(),
            model_name=str(conf.get("ai.model_name", DEFAULT_MODEL) or DEFAULT_MODEL).strip(),
            timeout_seconds=max(1, timeout),
        )


def _empty_usage() -> Dict[str, int]:
    return {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def _mock_completion(system_prompt: str, user_prompt: str) -> Dict[str, Any]:
    kind = "story" if "storyteller" in (system_prompt or "") else "homework"
    topic = re.sub(r"\s+", " ", str(user_prompt or "")).strip()[:80] or "your question"
    text = (
        f"[mock {kind}] Let's think about \"{topic}\" together.\n\n"
        "This is simulated output for local development and automated tests."
    )
    words = len(text.split())
    return {
        "response": text,
        "usage": {"prompt_tokens": 0, "completion_tokens": words, "total_tokens": words},
    }


def call_openai_compatible(
    provider: ProviderConfig,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int = 300,
    temperature: float = 0.7,
) -> Dict[str, Any]:
    """调用 OpenAI 兼容的 /chat/completions，返回 {"response", "usage"}。"""
    if provider.is_mock:
        return _mock_completion(system_prompt, user_prompt)
    if not provider.api_key:
        raise AIServiceError("AI service is not configured", status_code=503)

    endpoint = f"{provider.base_url.rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {provider.api_key}",
        "Content-Type": "application/json; charset=utf-8",
    }
    payload = {
        "model": provider.model_name,
        "max_tokens": int(max_tokens),
        "temperature": float(temperature),
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
    }
    try:
        resp = requests.post(
            endpoint,
            data=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            headers=headers,
            timeout=provider.timeout_seconds,
        )
    except requests.RequestException as e:
        raise AIServiceError(f"model request failed: {e}") from e

    if resp.status_code >= 400:
        raise AIServiceError(f"model call failed: {resp.text[:300]}")
    try:
        data = resp.json()
    except ValueError as e:
        raise AIServiceError("model returned invalid JSON") from e

    choices = data.get("choices") or []
    content = ""
    if choices:
        content = str((choices[0].get("message") or {}).get("content") or "").strip()
    raw_usage = data.get("usage") or {}
    usage = _empty_usage()
    for key in usage:
        try:
            usage[key] = int(raw_usage.get(key) or 0)
        except (TypeError, ValueError):
            usage[key] = 0
    return {"response": content or FALLBACK_REPLY, "usage": usage}


def complete_for_child(
    provider: ProviderConfig,
    request_type: str,
    text: str,
    child_age: Optional[int] = None,
) -> Dict[str, Any]:
    params = generation_params(request_type)
    log_event(logger, E.AI_COMPLETE_START, type=request_type, age=child_age or "-", chars=len(text or ""))
    try:
        result = call_openai_compatible(
            provider,
            build_system_prompt(request_type, child_age),
            text,
            max_tokens=int(params["max_tokens"]),
            temperature=float(params["temperature"]),
        )
    except AIServiceError as e:
        log_event(logger, E.AI_COMPLETE_FAIL, level="error", type=request_type, error=e)
        raise
    log_event(
        logger,
        E.AI_COMPLETE_SUCCESS,
        type=request_type,
        total_tokens=result["usage"]["total_tokens"],
    )
    return result

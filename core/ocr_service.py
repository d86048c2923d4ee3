import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

import requests

from core.config import cfg
from core.errors import OCRServiceError
from core.events import E, log_event
from core.log import get_logger

logger = get_logger(__name__)

VISION_ENDPOINT = "https://vision.googleapis.com/v1/images:annotate"
MAX_IMAGE_DIMENSION = 4096
MAX_IMAGE_BYTES = 10 * 1024 * 1024

_DATA_URL_PREFIX = re.compile(r"^data:image/[a-z]+;base64,")


@dataclass(frozen=True)
class OCRConfig:
    api_key: str = ""
    endpoint: str = VISION_ENDPOINT
    timeout_seconds: int = 30

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    @classmethod
    def from_config(cls, conf=None) -> "OCRConfig":
        conf = conf or cfg
        try:
            timeout = int(conf.get("ocr.timeout_seconds", 30) or 30)
        except (TypeError, ValueError):
            timeout = 30
        return cls(
            api_key=str(conf.get("ocr.api_key", "") or "").strip(),
            endpoint=str(conf.get("ocr.endpoint", VISION_ENDPOINT) or VISION_ENDPOINT).strip(),
            timeout_seconds=max(1, timeout),
        )


def strip_data_url(image_base64: str) -> str:
    return _DATA_URL_PREFIX.sub("", str(image_base64 or ""), count=1)


def validate_image_size(width: int, height: int) -> bool:
    return width <= MAX_IMAGE_DIMENSION and height <= MAX_IMAGE_DIMENSION


def validate_image_file_size(image_base64: str) -> bool:
    size_in_bytes = len(strip_data_url(image_base64)) * 3 / 4
    return size_in_bytes <= MAX_IMAGE_BYTES


def extract_text(
    config: OCRConfig,
    image_base64: str,
    width: Optional[int] = None,
    height: Optional[int] = None,
) -> Dict[str, Any]:
    """
    Google Vision TEXT_DETECTION，返回 {"text", "confidence"}，confidence 为百分比。
    客户端上报了宽高时先校验尺寸，超过 4096px 直接拒绝。
    """
    if not config.enabled:
        raise OCRServiceError("OCR service not configured", status_code=503)
    content = strip_data_url(image_base64)
    if not content:
        raise OCRServiceError("image is empty", status_code=400)
    if not validate_image_file_size(content):
        raise OCRServiceError("image exceeds 10MB", status_code=413)
    if width is not None and height is not None and not validate_image_size(width, height):
        raise OCRServiceError(f"image dimensions exceed {MAX_IMAGE_DIMENSION}px", status_code=413)

    body = {
        "requests": [
            {
                "image": {"content": content},
                "features": [{"type": "TEXT_DETECTION", "maxResults": 1}],
            }
        ]
    }
    log_event(logger, E.OCR_EXTRACT_START, chars=len(content))
    try:
        resp = requests.post(
            config.endpoint,
            params={"key": config.api_key},
            json=body,
            timeout=config.timeout_seconds,
        )
    except requests.RequestException as e:
        log_event(logger, E.OCR_EXTRACT_FAIL, level="error", error=e)
        raise OCRServiceError(f"Vision API request failed: {e}") from e

    try:
        result = resp.json()
    except ValueError:
        result = {}
    if not isinstance(result, dict):
        result = {}
    if resp.status_code >= 400:
        error = result.get("error")
        message = (error.get("message") if isinstance(error, dict) else None) or "Unknown error"
        log_event(logger, E.OCR_EXTRACT_FAIL, level="error", status=resp.status_code, error=message)
        raise OCRServiceError(f"Vision API error: {message}")

    responses = result.get("responses")
    first_response = responses[0] if isinstance(responses, list) and responses else {}
    annotations = first_response.get("textAnnotations") if isinstance(first_response, dict) else None
    first = annotations[0] if isinstance(annotations, list) and annotations else {}
    if not isinstance(first, dict):
        first = {}
    text = str(first.get("description") or "")
    try:
        confidence = float(first.get("confidence") or 0)
    except (TypeError, ValueError):
        confidence = 0.0
    log_event(logger, E.OCR_EXTRACT_SUCCESS, chars=len(text))
    return {"text": text, "confidence": confidence * 100}

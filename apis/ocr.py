from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from core.auth import get_current_user
from core.config import cfg
from core.errors import OCRServiceError
from core.ocr_service import OCRConfig, extract_text
from .base import success_response

router = APIRouter(prefix="/ocr", tags=["OCR"])


class OCRExtractRequest(BaseModel):
    image: str = Field(..., min_length=1, description="base64 image or data URL")
    width: Optional[int] = Field(default=None, gt=0)
    height: Optional[int] = Field(default=None, gt=0)


def get_ocr_config() -> OCRConfig:
    return OCRConfig.from_config(cfg)


@router.post("/extract", summary="Extract text from a homework photo")
async def extract(
    payload: OCRExtractRequest,
    config: OCRConfig = Depends(get_ocr_config),
    current_user: dict = Depends(get_current_user),
):
    try:
        result = await run_in_threadpool(extract_text, config, payload.image, payload.width, payload.height)
    except OCRServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return success_response(result)

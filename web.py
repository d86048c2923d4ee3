import json
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, FastAPI, Request
from fastapi.exception_handlers import http_exception_handler
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import OperationalError
from starlette.exceptions import HTTPException as StarletteHTTPException

from apis.ai import router as ai_router
from apis.base import error_response
from apis.children import router as children_router
from apis.ocr import router as ocr_router
from apis.profile import router as profile_router
from apis.usage import router as usage_router
from core.config import API_BASE, VERSION, cfg
from core.db import DB
from core.errors import ConstraintViolation, StoreUnavailable
from core.events import E, log_event
from core.log import get_logger, set_trace_id

logger = get_logger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:8081",
]


class UnicodeJSONResponse(JSONResponse):
    """中文不转义为 \\uXXXX"""

    def render(self, content: Any) -> bytes:
        return json.dumps(
            content,
            ensure_ascii=False,
            allow_nan=False,
            indent=None,
            separators=(",", ":"),
        ).encode("utf-8")


app = FastAPI(
    title="Guardianest API",
    description="Homework help and story time for kids, with parental limits",
    version=VERSION,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json",
    default_response_class=UnicodeJSONResponse,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=list(cfg.get("app.cors_origins", DEFAULT_CORS_ORIGINS) or DEFAULT_CORS_ORIGINS),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_trace_header(request: Request, call_next):
    trace_id = set_trace_id(request.headers.get("X-Request-Id"))
    response = await call_next(request)
    response.headers["X-Request-Id"] = trace_id
    response.headers["X-Version"] = VERSION
    return response


@app.exception_handler(StarletteHTTPException)
async def http_error(request: Request, exc: StarletteHTTPException):
    # 未匹配路由的 404 统一包成 code/message/data
    if exc.status_code == 404 and exc.detail == "Not Found":
        return UnicodeJSONResponse(status_code=404, content=error_response(404, "Not found"))
    return await http_exception_handler(request, exc)


@app.exception_handler(ConstraintViolation)
async def constraint_error(request: Request, exc: ConstraintViolation):
    return UnicodeJSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(OperationalError)
@app.exception_handler(StoreUnavailable)
async def store_error(request: Request, exc: Exception):
    log_event(logger, E.SYSTEM_STORE_UNAVAILABLE, level="error", path=request.url.path, error=type(exc).__name__)
    return UnicodeJSONResponse(status_code=503, content=error_response(503, "Storage temporarily unavailable"))


api_router = APIRouter(prefix=f"{API_BASE}")
api_router.include_router(profile_router)
api_router.include_router(children_router)
api_router.include_router(usage_router)
api_router.include_router(ai_router)
api_router.include_router(ocr_router)
app.include_router(api_router)


@app.get("/", tags=["System"])
async def root():
    return {
        "message": "Guardianest API",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health", tags=["System"])
async def health():
    DB.ping()
    return {
        "status": "ok",
        "time": datetime.now(timezone.utc).isoformat(),
        "service": str(cfg.get("app_name", "guardianest-api")),
        "version": VERSION,
    }


@app.on_event("startup")
async def ensure_tables():
    DB.create_tables()
    log_event(logger, E.SYSTEM_STARTUP, version=VERSION, api_base=API_BASE)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("web:app", host="0.0.0.0", port=int(cfg.get("port", 8001) or 8001))

"""
core/auth.py — Bearer token 校验

令牌由托管认证服务签发（HS256，sub 为用户 id），这里只负责校验，不负责登录注册。
create_access_token 供本地联调脚本和测试使用。
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from core.config import API_BASE, cfg
from core.events import E, log_event
from core.log import get_logger

logger = get_logger(__name__)

DEFAULT_SECRET = "change-me"


def load_secret(conf=None) -> str:
    """签名密钥：配置项 secret 优先，其次环境变量 SECRET_KEY；缺省时告警并用默认值。"""
    conf = conf or cfg
    secret = str(conf.get("secret", "") or os.getenv("SECRET_KEY", "") or "").strip()
    if not secret or secret == DEFAULT_SECRET:
        logger.warning("secret 未配置，正在使用默认密钥 %r，生产环境必须设置 SECRET_KEY", DEFAULT_SECRET)
        return DEFAULT_SECRET
    return secret


SECRET_KEY = load_secret()
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(cfg.get("token_expire_minutes", 4320))

oauth2_scheme = OAuth2PasswordBearer(tokenUrl=f"{API_BASE}/auth/token", auto_error=False)

_credentials_exception = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Could not validate credentials",
    headers={"WWW-Authenticate": "Bearer"},
)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None, secret: str = None) -> str:
    to_encode = dict(data)
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode["exp"] = expire
    return jwt.encode(to_encode, secret or SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str, secret: str = None) -> Dict:
    """解析并校验 token；失败抛 401。托管认证服务的 aud 不做校验。"""
    try:
        payload = jwt.decode(
            token,
            secret or SECRET_KEY,
            algorithms=[ALGORITHM],
            options={"verify_aud": False},
        )
    except jwt.PyJWTError as e:
        log_event(logger, E.AUTH_TOKEN_INVALID, level="warning", error=type(e).__name__)
        raise _credentials_exception
    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise _credentials_exception
    return payload


async def get_current_user(token: Optional[str] = Depends(oauth2_scheme)) -> Dict:
    if not token:
        raise _credentials_exception
    payload = decode_access_token(token)
    user = {
        "username": str(payload.get("sub")),
        "role": str(payload.get("role") or ""),
        "email": str(payload.get("email") or ""),
    }
    log_event(logger, E.AUTH_TOKEN_VERIFY, level="debug", username=user["username"])
    return user

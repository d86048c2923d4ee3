from typing import Any

from fastapi import HTTPException, status

from core.children_service import can_access_child, get_child
from core.models.child import Child


def success_response(data: Any = None, message: str = "success", code: int = 0) -> dict:
    return {"code": code, "message": message, "data": data}


def error_response(code: int, message: str, data: Any = None) -> dict:
    return {"code": code, "message": message, "data": data}


def owner_of(current_user: dict) -> str:
    return str(current_user.get("username") or "")


def require_child_access(session, current_user: dict, child_id: str, parent_only: bool = False) -> Child:
    """取孩子记录并校验访问权限；不存在 404，无权限 403。"""
    child = get_child(session, child_id)
    if child is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Child not found")
    subject = owner_of(current_user)
    allowed = subject == child.parent_id if parent_only else can_access_child(subject, child)
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to access this child")
    return child

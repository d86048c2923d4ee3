import secrets
import string
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from core.errors import ConstraintViolation
from core.events import E, log_event
from core.log import get_logger
from core.models.child import Child
from core.models.profile import Profile

logger = get_logger(__name__)

PROFILE_ROLES = ("parent", "child")
PROFILE_TIERS = ("free", "premium", "family")
CHILD_MIN_AGE = 3
CHILD_MAX_AGE = 18

INVITE_CODE_LENGTH = 8
_INVITE_ALPHABET = string.ascii_uppercase + string.digits


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_profile(session, profile_id: str) -> Optional[Profile]:
    return session.query(Profile).filter(Profile.id == profile_id).first()


def create_profile(session, profile_id: str, role: str = "parent", dob: str = None, tier: str = "free") -> Profile:
    key = str(profile_id or "").strip()
    if not key:
        raise ConstraintViolation("profile id must be a non-empty identifier")
    role_value = str(role or "").strip().lower()
    if role_value not in PROFILE_ROLES:
        raise ConstraintViolation(f"unknown role: {role!r}")
    tier_value = str(tier or "").strip().lower()
    if tier_value not in PROFILE_TIERS:
        raise ConstraintViolation(f"unknown tier: {tier!r}")

    now = _now()
    profile = Profile(
        id=key,
        role=role_value,
        dob=str(dob).strip()[:10] if dob else None,
        tier=tier_value,
        created_at=now,
        updated_at=now,
    )
    session.add(profile)
    session.commit()
    log_event(logger, E.PROFILE_CREATE, profile_id=key, role=role_value, tier=tier_value)
    return profile


def serialize_profile(profile: Profile) -> Dict:
    return {
        "id": profile.id,
        "role": profile.role,
        "dob": profile.dob,
        "tier": profile.tier,
        "created_at": _iso(profile.created_at),
        "updated_at": _iso(profile.updated_at),
    }


def _new_invite_code() -> str:
    return "".join(secrets.choice(_INVITE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def _unique_invite_code(session, attempts: int = 10) -> str:
    for _ in range(attempts):
        code = _new_invite_code()
        exists = session.query(Child.id).filter(Child.invite_code == code).first()
        if exists is None:
            return code
    raise RuntimeError("could not allocate a unique invite code")


def list_children(session, parent_id: str) -> List[Child]:
    return (
        session.query(Child)
        .filter(Child.parent_id == parent_id)
        .order_by(Child.created_at.asc())
        .all()
    )


def get_child(session, child_id: str) -> Optional[Child]:
    return session.query(Child).filter(Child.id == child_id).first()


def get_child_by_invite_code(session, invite_code: str) -> Optional[Child]:
    code = str(invite_code or "").strip().upper()
    if not code:
        return None
    return session.query(Child).filter(Child.invite_code == code).first()


def create_child(session, parent_id: str, name: str, age: int) -> Child:
    parent_key = str(parent_id or "").strip()
    if not parent_key:
        raise ConstraintViolation("parent_id must be a non-empty identifier")
    name_value = str(name or "").strip()
    if not name_value:
        raise ConstraintViolation("child name must not be empty")
    if isinstance(age, bool) or not isinstance(age, int) or not CHILD_MIN_AGE <= age <= CHILD_MAX_AGE:
        raise ConstraintViolation(f"age must be between {CHILD_MIN_AGE} and {CHILD_MAX_AGE}")

    now = _now()
    child = Child(
        id=str(uuid.uuid4()),
        parent_id=parent_key,
        name=name_value[:100],
        age=age,
        invite_code=_unique_invite_code(session),
        created_at=now,
        updated_at=now,
    )
    session.add(child)
    session.commit()
    log_event(logger, E.CHILD_CREATE, parent_id=parent_key, child_id=child.id, age=age)
    return child


def join_child(session, invite_code: str, profile_id: str) -> Optional[Child]:
    """孩子端用邀请码绑定账号；邀请码无效或已被其他账号绑定时返回 None。"""
    profile_key = str(profile_id or "").strip()
    if not profile_key:
        raise ConstraintViolation("profile id must be a non-empty identifier")
    child = get_child_by_invite_code(session, invite_code)
    if child is None:
        return None
    if child.profile_id and child.profile_id != profile_key:
        return None
    child.profile_id = profile_key
    child.updated_at = _now()
    session.commit()
    log_event(logger, E.CHILD_JOIN, child_id=child.id, profile_id=profile_key)
    return child


def can_access_child(subject_id: str, child: Optional[Child]) -> bool:
    """家长只能访问自己名下的孩子；孩子端只能访问自己绑定的记录。"""
    subject = str(subject_id or "").strip()
    if not subject or child is None:
        return False
    return subject == child.parent_id or subject == (child.profile_id or "")


def serialize_child(child: Child, include_invite_code: bool = True) -> Dict:
    data = {
        "id": child.id,
        "parent_id": child.parent_id,
        "name": child.name,
        "age": int(child.age or 0),
        "created_at": _iso(child.created_at),
        "updated_at": _iso(child.updated_at),
    }
    if include_invite_code:
        data["invite_code"] = child.invite_code
    return data

from __future__ import annotations

from ..extensions import db
from ..models import Setting
from ..validation import ValidationError
from app.time_utils import utcnow


MAX_KEY_LENGTH = 128


def _check_key(key: str) -> str:
    key = (key or "").strip()
    if not key:
        raise ValidationError("key is required")
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationError(f"key must be at most {MAX_KEY_LENGTH} characters")
    return key


def get_setting(org_id: int, user_id: int, key: str) -> dict:
    """Value for (org, user, key); an unset key reads as null."""
    key = _check_key(key)
    row = db.session.get(Setting, (org_id, user_id, key))
    if row is None:
        return {"key": key, "value": None}
    return row.to_dict()


def put_setting(org_id: int, user_id: int, key: str, value) -> dict:
    key = _check_key(key)
    if value is not None and not isinstance(value, str):
        raise ValidationError("value must be a string or null")

    row = db.session.get(Setting, (org_id, user_id, key))
    if row is None:
        row = Setting(org_id=org_id, user_id=user_id, key=key, value=value)
        db.session.add(row)
    else:
        row.value = value
        row.updated_at = utcnow()
    db.session.commit()
    return row.to_dict()

from __future__ import annotations

import re
from typing import Any

from ..extensions import db
from ..models import Setting
from .activity_service import log_activity
from storefront.validation import ValidationError, coerce_int

KEY_RE = re.compile(r"^[a-z][a-z0-9_.]{0,63}$")


def _non_negative_int(value: Any) -> int:
    parsed = coerce_int(value, "value")
    if parsed < 0:
        raise ValidationError("value must be >= 0")
    return parsed


def _short_text(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("value must be a non-empty string")
    return value.strip()[:255]


# Keys the application reads; anything else is stored as free-form JSON
KNOWN_SETTINGS = {
    "low_stock_threshold": _non_negative_int,
    "store_name": _short_text,
    "store_phone": _short_text,
    "receipt_footer": _short_text,
}


def get_setting(key: str, default: Any = None) -> Any:
    setting = db.session.get(Setting, key)
    return setting.value if setting is not None else default


def all_settings() -> dict[str, Any]:
    return {s.key: s.value for s in db.session.query(Setting).order_by(Setting.key.asc()).all()}


def set_setting(key: str | None, value: Any, *, user_id: int | None = None) -> Setting:
    key = (key or "").strip()
    if not key:
        raise ValidationError("Setting key is required")
    if not KEY_RE.match(key):
        raise ValidationError("Setting key must be lowercase letters, digits, '_' or '.'")
    validator = KNOWN_SETTINGS.get(key)
    if validator is not None and value is not None:
        value = validator(value)

    setting = db.session.get(Setting, key)
    before = setting.value if setting is not None else None
    if setting is None:
        setting = Setting(key=key)
        db.session.add(setting)
    setting.value = value
    setting.updated_by_user_id = user_id

    log_activity(
        user_id=user_id,
        action="update_setting",
        entity_type="Setting",
        entity_id=key,
        changes={"before": {"value": before}, "after": {"value": value}},
    )
    db.session.commit()
    return setting

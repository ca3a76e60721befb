from __future__ import annotations

from typing import Any

from flask import current_app

from ..extensions import db
from ..models import SiteSetting


REGIONS_ENABLED = "regions_enabled"
GROUP_BUY_ENABLED = "group_buy_enabled"
INDIVIDUAL_PURCHASE_ENABLED = "individual_purchase_enabled"

# key -> (default, description)
FEATURE_FLAGS = {
    REGIONS_ENABLED: (True, "Show regional sub-groups and accept sub-group orders"),
    GROUP_BUY_ENABLED: (True, "Show group-buy batches and accept group-buy orders"),
    INDIVIDUAL_PURCHASE_ENABLED: (True, "Accept individual (per box) purchases"),
}


class SettingsError(ValueError):
    pass


class SettingsValidationError(SettingsError):
    pass


class SettingsNotFoundError(SettingsError):
    pass


class FeatureDisabledError(SettingsError):
    """A checkout or listing was attempted while its feature flag is off."""

    def __init__(self, key: str):
        super().__init__(f"Feature disabled: {key}")
        self.key = key


def _parse_bool(raw: str | None, default: bool) -> bool:
    if raw is None:
        return default
    return raw.strip().lower() == "true"


def _coerce_flag(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise SettingsValidationError(f"{key} must be a boolean")


def ensure_defaults() -> int:
    """Insert missing flag rows with their defaults. Returns number created."""
    existing = {row.key for row in db.session.query(SiteSetting.key).all()}
    created = 0
    for key, (default, description) in FEATURE_FLAGS.items():
        if key in existing:
            continue
        db.session.add(SiteSetting(
            key=key,
            value="true" if default else "false",
            description=description,
        ))
        created += 1
    if created:
        db.session.commit()
    return created


def is_enabled(key: str) -> bool:
    if key not in FEATURE_FLAGS:
        raise SettingsNotFoundError(f"Unknown setting: {key}")
    row = db.session.query(SiteSetting).filter_by(key=key).first()
    return _parse_bool(row.value if row else None, FEATURE_FLAGS[key][0])


def require_enabled(key: str) -> None:
    if not is_enabled(key):
        raise FeatureDisabledError(key)


def get_flags() -> dict[str, bool]:
    """All feature flags; missing rows read as their default."""
    rows = {
        row.key: row.value
        for row in db.session.query(SiteSetting).filter(SiteSetting.key.in_(FEATURE_FLAGS.keys())).all()
    }
    return {
        key: _parse_bool(rows.get(key), default)
        for key, (default, _) in FEATURE_FLAGS.items()
    }


def update_flags(changes: dict, *, updated_by_user_id: int | None = None) -> dict[str, bool]:
    """
    Apply a partial {key: bool} update. Unknown keys and non-boolean values
    are rejected before anything is written.
    """
    if not isinstance(changes, dict) or not changes:
        raise SettingsValidationError("Provide at least one setting to update")

    coerced: dict[str, bool] = {}
    for key, value in changes.items():
        if key not in FEATURE_FLAGS:
            raise SettingsNotFoundError(f"Unknown setting: {key}")
        coerced[key] = _coerce_flag(key, value)

    for key, value in coerced.items():
        row = db.session.query(SiteSetting).filter_by(key=key).first()
        if row is None:
            row = SiteSetting(key=key, description=FEATURE_FLAGS[key][1])
            db.session.add(row)
        row.value = "true" if value else "false"
        row.updated_by_user_id = updated_by_user_id

    db.session.commit()
    current_app.logger.info("Feature flags updated by user %s: %s", updated_by_user_id, coerced)
    return get_flags()

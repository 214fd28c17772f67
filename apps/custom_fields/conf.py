"""Settings access for the custom fields app.

Values come from ``settings.CUSTOM_FIELDS`` and fall back to ``DEFAULTS``.
"""

from typing import Any, Dict

from django.conf import settings

DEFAULTS: Dict[str, Any] = {
    "DEV_MODE": False,
    "ENCRYPTION_KEYS": [],
    # Dotted path to a callable (user, group_slug, model_id) -> bool
    "OWNER_RESOLVER": None,
}


def get_setting(name: str) -> Any:
    """Return a custom fields setting, falling back to its default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown custom fields setting: {name}")
    user_settings = getattr(settings, "CUSTOM_FIELDS", None) or {}
    return user_settings.get(name, DEFAULTS[name])

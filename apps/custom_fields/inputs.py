"""
Request input helpers.

Custom field inputs are named ``CustomFields.<slug>`` so they can share a
form with the host record's own inputs without clashing. JSON clients may
instead send the values nested under a ``CustomFields`` object.
"""

from typing import Any, Dict, Mapping, Optional

FIELD_NAMESPACE = "CustomFields"
_PREFIX = f"{FIELD_NAMESPACE}."


def field_input_name(slug: str) -> str:
    """Return the namespaced input name for a field slug."""
    return f"{_PREFIX}{slug}"


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def extract_submitted_values(data: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """
    Pull the custom field values out of submitted request data.

    A null value counts as not submitted, so it leaves the stored value alone.

    Args:
        data: request.POST / request.data or any mapping

    Returns:
        Dict of field slug -> submitted value as a string
    """
    if not data:
        return {}

    values: Dict[str, str] = {}

    nested = data.get(FIELD_NAMESPACE)
    if isinstance(nested, Mapping):
        for slug, value in nested.items():
            if value is not None:
                values[str(slug)] = _as_text(value)

    # Flat keys win over nested ones. QueryDict.get returns the last value.
    for key in data.keys():
        if isinstance(key, str) and key.startswith(_PREFIX) and len(key) > len(_PREFIX):
            value = data.get(key)
            if value is not None:
                values[key[len(_PREFIX):]] = _as_text(value)

    return values

"""Type definitions for custom fields.

Snapshots are read-only views of a group, its fields and the values stored
for one record. They are what the service hands to renderers, validators and
API views instead of loose nested dicts.
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class FieldType(str, Enum):
    """Supported custom field input types."""

    TEXT = "text"
    SELECT = "select"
    TEXTAREA = "textarea"
    CHECKBOX = "checkbox"
    WYSIWYG = "wysiwyg"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["FieldType"]:
        """Return the matching type, or None for anything unknown."""
        try:
            return cls(value)
        except ValueError:
            return None


@dataclass
class ValueSnapshot:
    """A stored value. All attributes are None when nothing is stored yet."""

    id: Optional[int] = None
    field_id: Optional[int] = None
    model_id: Optional[int] = None
    value: Optional[str] = None

    @property
    def exists(self) -> bool:
        return bool(self.id and self.id > 0)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "field_id": self.field_id,
            "model_id": self.model_id,
            "value": self.value,
        }


@dataclass
class FieldSnapshot:
    """A field definition together with its value for one record."""

    id: int
    slug: str
    type: str
    title: str
    placeholder: str = ""
    help_text: str = ""
    is_editable: bool = True
    is_staff_only: bool = False
    validation_rules: str = ""
    custom_regex: str = ""
    value_options: str = ""
    value: ValueSnapshot = field(default_factory=ValueSnapshot)

    @property
    def field_type(self) -> Optional[FieldType]:
        return FieldType.parse(self.type)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "type": self.type,
            "title": self.title,
            "placeholder": self.placeholder,
            "help_text": self.help_text,
            "is_editable": self.is_editable,
            "is_staff_only": self.is_staff_only,
            "validation_rules": self.validation_rules,
            "custom_regex": self.custom_regex,
            "value_options": self.value_options,
            "value": self.value.to_dict(),
        }


@dataclass
class GroupSnapshot:
    """A group with its fields keyed by slug, in store order."""

    id: int
    slug: str
    name: str
    description: str = ""
    fields: Dict[str, FieldSnapshot] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "fields": {slug: f.to_dict() for slug, f in self.fields.items()},
        }


@dataclass
class ValidationOutcome:
    """Result of validating submitted custom field values."""

    result: bool
    errors: Optional[Dict[str, List[str]]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"result": self.result, "errors": self.errors}


# A rule table maps field slug -> pipe-delimited string or list of rule tokens
RuleTable = Dict[str, Union[str, List[str]]]


def decode_value_options(raw: Optional[str]) -> List[Tuple[str, str]]:
    """Decode a select field's JSON options into (value, label) choices.

    A JSON list maps each item to itself, a JSON object maps key to label.
    Anything else yields no choices.
    """
    if not raw:
        return []

    try:
        decoded = json.loads(raw)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not decode select options {raw!r}: {e}")
        return []

    if isinstance(decoded, dict):
        return [(str(key), str(label)) for key, label in decoded.items()]
    if isinstance(decoded, list):
        return [(str(item), str(item)) for item in decoded]

    logger.warning(f"Select options must be a JSON list or object, got {type(decoded).__name__}")
    return []

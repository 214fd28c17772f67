"""
Custom fields service.

Builds forms for a group of custom fields, validates and saves submitted
values, and reads or writes single values. Values are stored encrypted, one
row per (field, model_id), where model_id is the ID of the record (client,
server, ...) the values belong to.

Example usage:
    fields = CustomFields()

    html = fields.generate_form("client_details", client.id, is_client=True)

    outcome = fields.validate_custom_fields("client_details", client.id, True, request.POST)
    if outcome.result:
        fields.save_custom_fields("client_details", client.id, True, request.POST)

    fields.get_field_value("client_details", "phone", client.id)
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from django.db import DatabaseError, transaction
from django.utils.html import format_html
from django.utils.safestring import SafeString, mark_safe
from django.utils.translation import gettext

from .conf import get_setting
from .encryption import FieldEncryptor, get_encryptor
from .inputs import extract_submitted_values, field_input_name
from .models import DataField, DataFieldValue, DataGroup
from .rendering import FormRenderer
from .types import (
    FieldSnapshot,
    FieldType,
    GroupSnapshot,
    RuleTable,
    ValidationOutcome,
    ValueSnapshot,
    decode_value_options,
)
from .validation import RuleValidator

logger = logging.getLogger(__name__)


class CustomFields:
    """Operations over one group of custom fields at a time."""

    def __init__(
        self,
        dev_mode: Optional[bool] = None,
        encryptor: Optional[FieldEncryptor] = None,
        validator: Optional[RuleValidator] = None,
        renderer: Optional[FormRenderer] = None,
    ):
        """
        Args:
            dev_mode: Lifts the edit lock on non-editable fields.
                Defaults to CUSTOM_FIELDS["DEV_MODE"].
            encryptor: Encrypts stored values. Defaults to the settings-based one.
            validator: Rule engine for submitted values.
            renderer: Builds the form markup.
        """
        self.dev_mode = bool(get_setting("DEV_MODE")) if dev_mode is None else dev_mode
        self.encryptor = encryptor or get_encryptor()
        self.validator = validator or RuleValidator()
        self.renderer = renderer or FormRenderer()

    def is_locked(self, is_editable: bool) -> bool:
        """Non-editable fields can only be written in development mode."""
        return not is_editable and not self.dev_mode

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def get_group(self, slug: str, model_id: int = 0, is_client: bool = True) -> Optional[GroupSnapshot]:
        """
        Load a group, its fields and their values for one record.

        Args:
            slug: The group's unique slug
            model_id: The record to load values for
            is_client: Hide staff-only fields

        Returns:
            GroupSnapshot, or None if the group doesn't exist. Fields without
            a stored value get an empty ValueSnapshot.
        """
        group = DataGroup.objects.get_by_slug(slug)
        if group is None:
            return None

        snapshot = GroupSnapshot(
            id=group.id,
            slug=group.slug,
            name=group.name,
            description=group.description,
        )

        for field in group.fields.visible(is_client):
            stored = DataFieldValue.objects.for_model(field.id, model_id)
            snapshot.fields[field.slug] = self._field_snapshot(field, stored)

        return snapshot

    def get_field_value(self, group_slug: str, field_slug: str, model_id: int = 0) -> Optional[str]:
        """Return the decrypted value of one field, or None if anything is missing."""
        field = self.find_field(group_slug, field_slug)
        if field is None:
            return None

        stored = DataFieldValue.objects.for_model(field.id, model_id)
        if stored is None:
            return None

        return self._decrypt(stored.value)

    def decrypted_values(self, snapshot: GroupSnapshot) -> Dict[str, Optional[str]]:
        """Map field slug -> decrypted value (None when nothing is stored)."""
        return {slug: self._decrypt(field.value.value) for slug, field in snapshot.fields.items()}

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def generate_form(self, slug: str, model_id: int = 0, is_client: bool = True) -> SafeString:
        """
        Render the inputs for every field in a group.

        Returns:
            The concatenated markup, or an empty string when the group
            doesn't exist or has no fields.
        """
        snapshot = self.get_group(slug, model_id, is_client)
        if snapshot is None or not snapshot.fields:
            return mark_safe("")

        parts = []
        for field in snapshot.fields.values():
            parts.append(self.render_field(field))

            if field.help_text:
                parts.append(format_html('<span class="help-block">{}</span>', gettext(field.help_text)))

        return mark_safe("".join(parts))

    def render_field(self, field: FieldSnapshot) -> str:
        """Render a single field. Unknown field types render nothing."""
        field_type = field.field_type
        if field_type is None:
            logger.debug(f"Not rendering field '{field.slug}' of unknown type '{field.type}'")
            return ""

        value = self._decrypt(field.value.value)
        name = field_input_name(field.slug)
        label = gettext(field.title)

        if field_type is FieldType.CHECKBOX:
            options: Dict[str, Any] = {"checked": "checked"} if value == "1" else {}
        else:
            options = {"value": value, "placeholder": field.placeholder}
            if field_type is FieldType.SELECT:
                options["options"] = decode_value_options(field.value_options)

        if self.is_locked(field.is_editable):
            options["disabled"] = "disabled"

        render: Dict[FieldType, Callable[..., str]] = {
            FieldType.TEXT: self.renderer.input,
            FieldType.SELECT: self.renderer.select,
            FieldType.TEXTAREA: self.renderer.textarea,
            FieldType.CHECKBOX: self.renderer.checkbox,
            FieldType.WYSIWYG: self.renderer.wysiwyg,
        }
        return render[field_type](name, label, options)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def build_rule_table(self, snapshot: GroupSnapshot) -> RuleTable:
        """Collect the validation rules of every field that has any."""
        rules: RuleTable = {}
        for field in snapshot.fields.values():
            if field.custom_regex:
                field_rules = field.validation_rules.split("|") if field.validation_rules else []
                field_rules.append(f"regex:{field.custom_regex}")
                rules[field.slug] = field_rules
            elif field.validation_rules:
                rules[field.slug] = field.validation_rules
        return rules

    def validate_custom_fields(
        self,
        slug: str,
        model_id: int,
        is_client: bool,
        data: Optional[Mapping[str, Any]] = None,
    ) -> ValidationOutcome:
        """
        Run submitted values through each field's validation rules.

        Args:
            slug: The group's unique slug
            model_id: The record being edited
            is_client: Only validate fields the client can see
            data: Submitted request data (``CustomFields.<slug>`` keys)

        Returns:
            ValidationOutcome with result True and no errors, or result
            False and a mapping of field slug -> messages.
        """
        submitted = extract_submitted_values(data)

        snapshot = self.get_group(slug, model_id, is_client)
        if snapshot is None or not snapshot.fields:
            return ValidationOutcome(result=True, errors=None)

        rules = self.build_rule_table(snapshot)
        if not rules:
            return ValidationOutcome(result=True, errors=None)

        validation = self.validator.make(submitted, rules)
        if validation.fails():
            return ValidationOutcome(result=False, errors=validation.messages())
        return ValidationOutcome(result=True, errors=None)

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save_custom_fields(
        self,
        slug: str,
        model_id: int = 0,
        is_client: bool = True,
        data: Optional[Mapping[str, Any]] = None,
    ) -> bool:
        """
        Save submitted values for every field present in the data.

        Locked fields are skipped. Stops at the first failed write and
        returns False; values written before it stay written.
        """
        submitted = extract_submitted_values(data)

        snapshot = self.get_group(slug, model_id, is_client)
        if snapshot is None or not snapshot.fields:
            return True

        for field in snapshot.fields.values():
            if field.slug not in submitted:
                continue

            if self.is_locked(field.is_editable):
                logger.debug(f"Skipping locked field {slug}.{field.slug} for model {model_id}")
                continue

            if not self._store(field.id, model_id, submitted[field.slug]):
                return False

        return True

    def set_field_value(
        self,
        new_value: str,
        group_slug: str,
        field_slug: str,
        model_id: int = 0,
    ) -> Optional[bool]:
        """
        Set the value of one field.

        Returns:
            None if the group or field doesn't exist, False if the field is
            locked or the write failed, True otherwise.
        """
        field = self.find_field(group_slug, field_slug)
        if field is None:
            return None

        if self.is_locked(field.is_editable):
            logger.debug(f"Refusing to set locked field {group_slug}.{field_slug}")
            return False

        return self._store(field.id, model_id, new_value)

    def delete_custom_field_values(self, slug: str, model_id: int = 0) -> None:
        """
        Delete every stored value of a group for one record, staff-only
        fields included. Used when the record itself is deleted.

        Store errors propagate; values after a failed delete are left alone.
        """
        snapshot = self.get_group(slug, model_id, is_client=False)
        if snapshot is None:
            return

        deleted = 0
        for field in snapshot.fields.values():
            if field.value.exists:
                DataFieldValue.objects.filter(pk=field.value.id).delete()
                deleted += 1

        if deleted:
            logger.info(f"Deleted {deleted} custom field values of group '{slug}' for model {model_id}")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def find_field(self, group_slug: str, field_slug: str) -> Optional[DataField]:
        group = DataGroup.objects.get_by_slug(group_slug)
        if group is None:
            return None
        return group.fields.filter(slug=field_slug).first()

    def _store(self, field_id: int, model_id: int, value: Any) -> bool:
        stored = DataFieldValue.objects.find_or_new(field_id, model_id)
        created = stored.pk is None
        stored.value = self.encryptor.encrypt(value)
        try:
            with transaction.atomic():
                stored.save()
        except DatabaseError:
            logger.exception(f"Failed to save custom field value for field {field_id}, model {model_id}")
            return False

        if created:
            logger.debug(f"Created custom field value for field {field_id}, model {model_id}")
        return True

    def _decrypt(self, token: Optional[str]) -> Optional[str]:
        if not token:
            return token
        return self.encryptor.decrypt(token)

    @staticmethod
    def _field_snapshot(field: DataField, stored: Optional[DataFieldValue]) -> FieldSnapshot:
        if stored is not None:
            value = ValueSnapshot(
                id=stored.id,
                field_id=stored.field_id,
                model_id=stored.model_id,
                value=stored.value,
            )
        else:
            value = ValueSnapshot()

        return FieldSnapshot(
            id=field.id,
            slug=field.slug,
            type=field.type,
            title=field.title,
            placeholder=field.placeholder,
            help_text=field.help_text,
            is_editable=field.is_editable,
            is_staff_only=field.is_staff_only,
            validation_rules=field.validation_rules,
            custom_regex=field.custom_regex,
            value_options=field.value_options,
            value=value,
        )

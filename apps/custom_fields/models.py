from typing import Optional

from django.db import models

from .types import FieldType


class DataGroupManager(models.Manager):
    """Lookups for custom field groups."""

    def get_by_slug(self, slug: str) -> Optional["DataGroup"]:
        """Return the group with this slug, or None."""
        return self.filter(slug=slug).first()


class DataGroup(models.Model):
    """A named collection of custom fields, addressed by slug."""

    slug = models.SlugField(max_length=128, unique=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DataGroupManager()

    class Meta:
        verbose_name = "Custom Field Group"
        verbose_name_plural = "Custom Field Groups"

    def __str__(self) -> str:
        return f"{self.name} ({self.slug})"


class DataFieldQuerySet(models.QuerySet):
    def visible(self, is_client: bool = True) -> "DataFieldQuerySet":
        """Hide staff-only fields from clients."""
        if is_client:
            return self.filter(is_staff_only=False)
        return self


class DataField(models.Model):
    """A single custom field definition within a group."""

    TYPE_CHOICES = [(field_type.value, field_type.value.title()) for field_type in FieldType]

    group = models.ForeignKey(
        DataGroup,
        on_delete=models.CASCADE,
        related_name="fields",
    )
    slug = models.SlugField(max_length=128)
    type = models.CharField(max_length=32, choices=TYPE_CHOICES, default=FieldType.TEXT.value)
    title = models.CharField(max_length=255, help_text="Label, or a translation key for it")
    placeholder = models.CharField(max_length=255, blank=True, default="")
    help_text = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Help text shown under the input, or a translation key for it",
    )
    is_editable = models.BooleanField(
        default=True,
        help_text="Locked fields can only be changed in development mode",
    )
    is_staff_only = models.BooleanField(
        default=False,
        help_text="Hidden from clients",
    )
    validation_rules = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Pipe-delimited rules, e.g. 'required|min:3|max:64'",
    )
    custom_regex = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Optional pattern the value must match, e.g. '/^[0-9]+$/'",
    )
    value_options = models.TextField(
        blank=True,
        default="",
        help_text="JSON list (or object of value: label) of choices for select fields",
    )
    sort_order = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DataFieldQuerySet.as_manager()

    class Meta:
        ordering = ["sort_order", "id"]
        constraints = [
            models.UniqueConstraint(fields=["group", "slug"], name="custom_fields_unique_group_slug"),
        ]

    def __str__(self) -> str:
        return f"{self.group.slug}.{self.slug}"


class DataFieldValueManager(models.Manager):
    """Lookups for stored field values, one per (field, model_id)."""

    def for_model(self, field_id: int, model_id: int) -> Optional["DataFieldValue"]:
        """Return the value row for this field and record, or None."""
        return self.filter(field_id=field_id, model_id=model_id).order_by("id").first()

    def find_or_new(self, field_id: int, model_id: int) -> "DataFieldValue":
        """Return the existing value row, or an unsaved new one."""
        value = self.for_model(field_id, model_id)
        if value is None:
            value = self.model(field_id=field_id, model_id=model_id)
        return value


class DataFieldValue(models.Model):
    """The encrypted value of one field for one external record.

    Uniqueness of (field, model_id) is kept by looking up before creating,
    there is no database constraint for it.
    """

    field = models.ForeignKey(
        DataField,
        on_delete=models.CASCADE,
        related_name="values",
    )
    model_id = models.PositiveBigIntegerField(
        db_index=True,
        help_text="ID of the record (client, server, ...) this value belongs to",
    )
    value = models.TextField(blank=True, default="", help_text="Encrypted value")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = DataFieldValueManager()

    class Meta:
        verbose_name = "Custom Field Value"
        verbose_name_plural = "Custom Field Values"
        indexes = [
            models.Index(fields=["field", "model_id"], name="custom_fields_value_lookup"),
        ]

    def __str__(self) -> str:
        return f"{self.field_id}#{self.model_id}"

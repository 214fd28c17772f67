"""Tests for the CustomFields service."""

from unittest.mock import patch

from cryptography.fernet import InvalidToken
from django.db import DatabaseError
from django.test import TestCase

from apps.custom_fields.models import DataField, DataFieldValue, DataGroup
from apps.custom_fields.service import CustomFields
from apps.custom_fields.types import ValueSnapshot


class CustomFieldsTestBase(TestCase):
    """Creates a client_details group with a few fields."""

    def setUp(self):
        self.group = DataGroup.objects.create(slug="client_details", name="Client Details")
        self.phone = DataField.objects.create(
            group=self.group,
            slug="phone",
            type="text",
            title="Phone",
            placeholder="Your phone number",
            help_text="Used for billing questions",
            validation_rules="required",
            sort_order=1,
        )
        self.newsletter = DataField.objects.create(
            group=self.group,
            slug="newsletter",
            type="checkbox",
            title="Newsletter",
            sort_order=2,
        )
        self.notes = DataField.objects.create(
            group=self.group,
            slug="internal_notes",
            type="textarea",
            title="Internal Notes",
            is_staff_only=True,
            sort_order=3,
        )
        self.service = CustomFields(dev_mode=False)

    def store(self, field, model_id, value):
        return DataFieldValue.objects.create(
            field=field,
            model_id=model_id,
            value=self.service.encryptor.encrypt(value),
        )


class TestGetGroup(CustomFieldsTestBase):

    def test_missing_group_returns_none(self):
        """Unknown slugs are reported as not found."""
        assert self.service.get_group("does_not_exist") is None

    def test_group_attributes(self):
        snapshot = self.service.get_group("client_details", 1, is_client=False)
        assert snapshot.id == self.group.id
        assert snapshot.slug == "client_details"
        assert snapshot.name == "Client Details"

    def test_client_does_not_see_staff_only_fields(self):
        snapshot = self.service.get_group("client_details", 1, is_client=True)
        assert list(snapshot.fields) == ["phone", "newsletter"]

    def test_staff_sees_all_fields_in_order(self):
        snapshot = self.service.get_group("client_details", 1, is_client=False)
        assert list(snapshot.fields) == ["phone", "newsletter", "internal_notes"]

    def test_missing_value_is_empty_placeholder(self):
        """Fields without a stored value get a value record with all attributes None."""
        snapshot = self.service.get_group("client_details", 1)
        value = snapshot.fields["phone"].value
        assert value == ValueSnapshot(id=None, field_id=None, model_id=None, value=None)
        assert value.exists is False

    def test_value_for_model_is_attached(self):
        stored = self.store(self.phone, 5, "555-1234")
        self.store(self.phone, 6, "555-9999")

        snapshot = self.service.get_group("client_details", 5)
        value = snapshot.fields["phone"].value
        assert value.id == stored.id
        assert value.model_id == 5
        assert value.field_id == self.phone.id
        # Snapshots carry the stored (encrypted) value
        assert self.service.encryptor.decrypt(value.value) == "555-1234"

    def test_group_without_fields(self):
        DataGroup.objects.create(slug="empty", name="Empty")
        snapshot = self.service.get_group("empty")
        assert snapshot.fields == {}
        assert snapshot.to_dict()["fields"] == {}

    def test_get_group_has_no_side_effects(self):
        self.service.get_group("client_details", 9, is_client=False)
        assert DataFieldValue.objects.count() == 0


class TestGenerateForm(CustomFieldsTestBase):

    def test_missing_group_renders_nothing(self):
        assert self.service.generate_form("nope", 1) == ""

    def test_group_without_fields_renders_nothing(self):
        DataGroup.objects.create(slug="empty", name="Empty")
        assert self.service.generate_form("empty", 1) == ""

    def test_inputs_are_namespaced(self):
        html = self.service.generate_form("client_details", 1)
        assert 'name="CustomFields.phone"' in html
        assert 'name="CustomFields.newsletter"' in html

    def test_staff_only_fields_hidden_from_clients(self):
        assert "internal_notes" not in self.service.generate_form("client_details", 1, is_client=True)
        assert 'name="CustomFields.internal_notes"' in self.service.generate_form(
            "client_details", 1, is_client=False
        )

    def test_text_value_is_decrypted(self):
        self.store(self.phone, 1, "555-1234")
        html = self.service.generate_form("client_details", 1)
        assert 'value="555-1234"' in html
        assert 'placeholder="Your phone number"' in html

    def test_help_text_block(self):
        html = self.service.generate_form("client_details", 1)
        assert '<span class="help-block">Used for billing questions</span>' in html

    def test_fields_render_in_store_order(self):
        html = self.service.generate_form("client_details", 1, is_client=False)
        assert html.index("CustomFields.phone") < html.index("CustomFields.newsletter")
        assert html.index("CustomFields.newsletter") < html.index("CustomFields.internal_notes")

    def test_checkbox_checked_when_value_is_one(self):
        self.store(self.newsletter, 1, "1")
        html = self.service.render_field(self.service.get_group("client_details", 1).fields["newsletter"])
        assert " checked" in html

    def test_checkbox_unchecked_for_zero_or_missing(self):
        self.store(self.newsletter, 2, "0")
        for model_id in (2, 3):
            field = self.service.get_group("client_details", model_id).fields["newsletter"]
            assert "checked" not in self.service.render_field(field)

    def test_select_options_decoded(self):
        DataField.objects.create(
            group=self.group,
            slug="plan",
            type="select",
            title="Plan",
            value_options='["bronze", "silver", "gold"]',
            sort_order=4,
        )
        self.service.set_field_value("gold", "client_details", "plan", 1)

        field = self.service.get_group("client_details", 1).fields["plan"]
        html = self.service.render_field(field)
        assert '<option value="bronze">bronze</option>' in html
        assert '<option value="gold" selected>gold</option>' in html

    def test_wysiwyg_renders_textarea(self):
        DataField.objects.create(group=self.group, slug="bio", type="wysiwyg", title="Bio", sort_order=5)
        html = self.service.generate_form("client_details", 1)
        assert "<textarea" in html
        assert "wysiwyg" in html

    def test_unknown_type_renders_nothing(self):
        DataField.objects.create(group=self.group, slug="colour", type="colour", title="Colour", sort_order=6)
        html = self.service.generate_form("client_details", 1)
        assert "CustomFields.colour" not in html
        assert "CustomFields.phone" in html

    def test_locked_field_disabled_outside_dev_mode(self):
        self.phone.is_editable = False
        self.phone.save()

        field = self.service.get_group("client_details", 1).fields["phone"]
        assert 'disabled="disabled"' in self.service.render_field(field)

        dev = CustomFields(dev_mode=True)
        assert "disabled" not in dev.render_field(field)

    def test_labels_are_escaped(self):
        self.phone.title = "<b>Phone</b>"
        self.phone.save()
        html = self.service.generate_form("client_details", 1)
        assert "<b>Phone</b>" not in html
        assert "&lt;b&gt;Phone&lt;/b&gt;" in html


class TestValidateCustomFields(CustomFieldsTestBase):

    def test_required_field_empty_fails(self):
        outcome = self.service.validate_custom_fields("client_details", 1, True, {"CustomFields.phone": ""})
        assert outcome.result is False
        assert "phone" in outcome.errors

    def test_required_field_filled_passes(self):
        outcome = self.service.validate_custom_fields("client_details", 1, True, {"CustomFields.phone": "12345"})
        assert outcome.to_dict() == {"result": True, "errors": None}

    def test_missing_group_passes(self):
        outcome = self.service.validate_custom_fields("nope", 1, True, {})
        assert outcome.result is True
        assert outcome.errors is None

    def test_group_without_rules_passes(self):
        self.phone.validation_rules = ""
        self.phone.save()
        outcome = self.service.validate_custom_fields("client_details", 1, True, {})
        assert outcome.result is True

    def test_rule_table(self):
        self.newsletter.validation_rules = "in:0,1"
        self.newsletter.custom_regex = "/^[01]$/"
        self.newsletter.save()

        snapshot = self.service.get_group("client_details", 1, is_client=False)
        rules = self.service.build_rule_table(snapshot)
        assert rules == {
            "phone": "required",
            "newsletter": ["in:0,1", "regex:/^[01]$/"],
        }
        assert "internal_notes" not in rules

    def test_custom_regex_with_pipe_is_kept_whole(self):
        self.phone.custom_regex = "/^(home|work):[0-9]+$/"
        self.phone.save()

        ok = self.service.validate_custom_fields("client_details", 1, True, {"CustomFields.phone": "work:123"})
        bad = self.service.validate_custom_fields("client_details", 1, True, {"CustomFields.phone": "cell:123"})
        assert ok.result is True
        assert bad.result is False
        assert list(bad.errors) == ["phone"]

    def test_custom_regex_with_unicode_flag(self):
        self.phone.custom_regex = "/^[a-z]+$/u"
        self.phone.save()

        ok = self.service.validate_custom_fields("client_details", 1, True, {"CustomFields.phone": "abc"})
        bad = self.service.validate_custom_fields("client_details", 1, True, {"CustomFields.phone": "ABC1"})
        assert ok.result is True
        assert bad.result is False

    def test_staff_only_rules_skipped_for_clients(self):
        self.notes.validation_rules = "required"
        self.notes.save()
        data = {"CustomFields.phone": "12345"}

        assert self.service.validate_custom_fields("client_details", 1, True, data).result is True
        staff = self.service.validate_custom_fields("client_details", 1, False, data)
        assert staff.result is False
        assert "internal_notes" in staff.errors

    def test_nested_json_input(self):
        outcome = self.service.validate_custom_fields(
            "client_details", 1, True, {"CustomFields": {"phone": "12345"}}
        )
        assert outcome.result is True


class TestSaveCustomFields(CustomFieldsTestBase):

    def test_save_then_read_back(self):
        data = {"CustomFields.phone": "12345"}
        assert self.service.validate_custom_fields("client_details", 4, True, data).result is True
        assert self.service.save_custom_fields("client_details", 4, True, data) is True

        stored = DataFieldValue.objects.get(field=self.phone, model_id=4)
        assert stored.value != "12345"
        assert self.service.get_field_value("client_details", "phone", 4) == "12345"

    def test_save_twice_updates_same_row(self):
        data = {"CustomFields.phone": "12345", "CustomFields.newsletter": "1"}
        assert self.service.save_custom_fields("client_details", 4, True, data) is True
        assert self.service.save_custom_fields("client_details", 4, True, data) is True

        assert DataFieldValue.objects.filter(field=self.phone, model_id=4).count() == 1
        assert DataFieldValue.objects.filter(model_id=4).count() == 2
        assert self.service.get_field_value("client_details", "newsletter", 4) == "1"

    def test_only_submitted_fields_are_saved(self):
        self.service.save_custom_fields("client_details", 4, True, {"CustomFields.phone": "1"})
        assert not DataFieldValue.objects.filter(field=self.newsletter).exists()

    def test_missing_group_or_fields_succeeds(self):
        assert self.service.save_custom_fields("nope", 1, True, {"CustomFields.phone": "1"}) is True
        DataGroup.objects.create(slug="empty", name="Empty")
        assert self.service.save_custom_fields("empty", 1, True, {"CustomFields.phone": "1"}) is True
        assert DataFieldValue.objects.count() == 0

    def test_locked_field_skipped(self):
        self.phone.is_editable = False
        self.phone.save()
        self.store(self.phone, 4, "original")

        data = {"CustomFields.phone": "changed", "CustomFields.newsletter": "1"}
        assert self.service.save_custom_fields("client_details", 4, True, data) is True
        assert self.service.get_field_value("client_details", "phone", 4) == "original"
        assert self.service.get_field_value("client_details", "newsletter", 4) == "1"

    def test_locked_field_saved_in_dev_mode(self):
        self.phone.is_editable = False
        self.phone.save()

        dev = CustomFields(dev_mode=True)
        assert dev.save_custom_fields("client_details", 4, True, {"CustomFields.phone": "dev"}) is True
        assert dev.get_field_value("client_details", "phone", 4) == "dev"

    def test_client_cannot_write_staff_only_field(self):
        self.service.save_custom_fields("client_details", 4, True, {"CustomFields.internal_notes": "x"})
        assert not DataFieldValue.objects.filter(field=self.notes).exists()

    def test_null_leaves_stored_value(self):
        self.service.set_field_value("555", "client_details", "phone", 4)

        data = {"CustomFields": {"phone": None, "newsletter": "1"}}
        assert self.service.save_custom_fields("client_details", 4, True, data) is True

        assert self.service.get_field_value("client_details", "phone", 4) == "555"
        assert self.service.get_field_value("client_details", "newsletter", 4) == "1"

    def test_failed_write_leaves_outer_transaction_usable(self):
        with patch.object(DataFieldValue, "_save_table", side_effect=DatabaseError("disk full")):
            assert self.service.set_field_value("555", "client_details", "phone", 4) is False

        # The enclosing test transaction still accepts queries
        assert DataFieldValue.objects.count() == 0
        assert self.service.set_field_value("556", "client_details", "phone", 4) is True

    def test_failed_write_stops_without_rollback(self):
        """A failing write aborts the save; earlier writes stay."""
        original_save = DataFieldValue.save
        calls = []

        def flaky_save(instance, *args, **kwargs):
            calls.append(instance.field_id)
            if len(calls) == 2:
                raise DatabaseError("disk full")
            return original_save(instance, *args, **kwargs)

        data = {
            "CustomFields.phone": "12345",
            "CustomFields.newsletter": "1",
            "CustomFields.internal_notes": "vip",
        }
        with patch.object(DataFieldValue, "save", autospec=True, side_effect=flaky_save):
            result = self.service.save_custom_fields("client_details", 4, False, data)

        assert result is False
        assert calls == [self.phone.id, self.newsletter.id]
        assert self.service.get_field_value("client_details", "phone", 4) == "12345"
        assert self.service.get_field_value("client_details", "newsletter", 4) is None
        assert self.service.get_field_value("client_details", "internal_notes", 4) is None


class TestDeleteCustomFieldValues(CustomFieldsTestBase):

    def test_only_values_for_model_are_deleted(self):
        self.store(self.phone, 7, "a")
        self.store(self.newsletter, 7, "1")
        self.store(self.phone, 8, "b")
        self.store(self.newsletter, 8, "0")

        self.service.delete_custom_field_values("client_details", 7)

        assert not DataFieldValue.objects.filter(model_id=7).exists()
        assert DataFieldValue.objects.filter(model_id=8).count() == 2

    def test_staff_only_values_are_deleted_too(self):
        self.store(self.notes, 7, "vip")
        self.service.delete_custom_field_values("client_details", 7)
        assert not DataFieldValue.objects.filter(field=self.notes).exists()

    def test_missing_group_is_noop(self):
        self.store(self.phone, 7, "a")
        assert self.service.delete_custom_field_values("nope", 7) is None
        assert DataFieldValue.objects.count() == 1

    def test_store_errors_propagate(self):
        self.store(self.phone, 7, "a")
        with patch(
            "django.db.models.query.QuerySet.delete",
            side_effect=DatabaseError("locked"),
        ):
            with self.assertRaises(DatabaseError):
                self.service.delete_custom_field_values("client_details", 7)


class TestSingleFieldAccess(CustomFieldsTestBase):

    def test_round_trip(self):
        assert self.service.set_field_value("hello world", "client_details", "phone", 3) is True
        assert self.service.get_field_value("client_details", "phone", 3) == "hello world"

    def test_set_updates_existing_row(self):
        self.service.set_field_value("one", "client_details", "phone", 3)
        self.service.set_field_value("two", "client_details", "phone", 3)
        assert DataFieldValue.objects.filter(field=self.phone, model_id=3).count() == 1
        assert self.service.get_field_value("client_details", "phone", 3) == "two"

    def test_get_missing_links_returns_none(self):
        assert self.service.get_field_value("nope", "phone", 3) is None
        assert self.service.get_field_value("client_details", "nope", 3) is None
        assert self.service.get_field_value("client_details", "phone", 3) is None

    def test_set_missing_group_or_field_returns_none(self):
        assert self.service.set_field_value("x", "nope", "phone", 3) is None
        assert self.service.set_field_value("x", "client_details", "nope", 3) is None
        assert DataFieldValue.objects.count() == 0

    def test_set_locked_field_refused(self):
        self.phone.is_editable = False
        self.phone.save()
        self.store(self.phone, 3, "original")

        assert self.service.set_field_value("changed", "client_details", "phone", 3) is False
        assert self.service.get_field_value("client_details", "phone", 3) == "original"

    def test_set_locked_field_in_dev_mode(self):
        self.phone.is_editable = False
        self.phone.save()

        dev = CustomFields(dev_mode=True)
        assert dev.set_field_value("changed", "client_details", "phone", 3) is True
        assert dev.get_field_value("client_details", "phone", 3) == "changed"

    def test_set_failed_write_returns_false(self):
        with patch.object(DataFieldValue, "save", side_effect=DatabaseError("read only")):
            assert self.service.set_field_value("x", "client_details", "phone", 3) is False

    def test_tampered_value_raises(self):
        DataFieldValue.objects.create(field=self.phone, model_id=3, value="not-a-token")
        with self.assertRaises(InvalidToken):
            self.service.get_field_value("client_details", "phone", 3)

    def test_dev_mode_read_from_settings(self):
        with self.settings(CUSTOM_FIELDS={"DEV_MODE": True}):
            assert CustomFields().dev_mode is True
        with self.settings(CUSTOM_FIELDS={}):
            assert CustomFields().dev_mode is False

# apps/custom_fields/forms.py
from django import forms
from .models import DataField
from .types import FieldType
from .validation import InvalidRuleError, compile_pattern, parse_rules
import json


class DataFieldForm(forms.ModelForm):
    """Admin form that checks a field's configuration before it is saved."""

    class Meta:
        model = DataField
        fields = [
            'group',
            'slug',
            'type',
            'title',
            'placeholder',
            'help_text',
            'is_editable',
            'is_staff_only',
            'validation_rules',
            'custom_regex',
            'value_options',
            'sort_order',
        ]
        widgets = {
            'value_options': forms.Textarea(attrs={'rows': 3}),
        }

    def clean_validation_rules(self):
        rules = self.cleaned_data.get('validation_rules', '')
        try:
            parse_rules(rules)
        except InvalidRuleError as e:
            raise forms.ValidationError(str(e))
        return rules

    def clean_custom_regex(self):
        pattern = self.cleaned_data.get('custom_regex', '')
        if pattern:
            try:
                compile_pattern(pattern)
            except InvalidRuleError:
                raise forms.ValidationError("Invalid regex pattern")
        return pattern

    def clean_value_options(self):
        raw = self.cleaned_data.get('value_options', '')
        if not raw:
            return raw
        try:
            decoded = json.loads(raw)
        except ValueError:
            raise forms.ValidationError("Options must be valid JSON.")
        if not isinstance(decoded, (list, dict)):
            raise forms.ValidationError("Options must be a JSON list or object.")
        return raw

    def clean(self):
        cleaned_data = super().clean()

        # Select fields are useless without choices
        if 'value_options' in self.fields and cleaned_data.get('type') == FieldType.SELECT.value:
            if not cleaned_data.get('value_options') and 'value_options' not in self.errors:
                self.add_error('value_options', "Select fields need at least one option.")

        return cleaned_data

"""
HTML rendering of custom field inputs.

Each method takes the input name, an already translated label and an
options mapping, and returns safe markup built from ``django.forms`` widgets.

Recognised option keys:
    value:       current (decrypted) value
    placeholder: placeholder text
    options:     list of (value, label) choices, select only
    checked:     "checked" to tick a checkbox
    disabled:    "disabled" to lock the input
"""

from typing import Any, Dict, List, Optional, Tuple, Type

from django import forms
from django.utils.html import format_html
from django.utils.safestring import SafeString

Options = Optional[Dict[str, Any]]


def input_id(name: str) -> str:
    """HTML id for an input name. Dots are not valid in CSS selectors."""
    return "id_" + name.replace(".", "_")


class FormRenderer:
    """Renders one form group (label + input) per call."""

    css_class = "form-control"

    def input(self, name: str, label: str, options: Options = None) -> SafeString:
        return self._render(forms.TextInput, name, label, options)

    def textarea(self, name: str, label: str, options: Options = None) -> SafeString:
        return self._render(forms.Textarea, name, label, options)

    def wysiwyg(self, name: str, label: str, options: Options = None) -> SafeString:
        return self._render(forms.Textarea, name, label, options, extra_class="wysiwyg")

    def select(self, name: str, label: str, options: Options = None) -> SafeString:
        options = options or {}
        choices: List[Tuple[str, str]] = list(options.get("options") or [])
        placeholder = options.get("placeholder")
        if placeholder:
            choices.insert(0, ("", placeholder))

        attrs = self._attrs(name, options)
        attrs.pop("placeholder", None)
        widget = forms.Select(choices=choices)
        return self._group(name, label, widget.render(name, options.get("value"), attrs=attrs))

    def checkbox(self, name: str, label: str, options: Options = None) -> SafeString:
        options = options or {}
        attrs = {"id": input_id(name), "value": "1"}
        if options.get("disabled"):
            attrs["disabled"] = "disabled"

        # Unticked boxes are not posted at all; the hidden input sends "0"
        hidden_attrs = {"disabled": "disabled"} if options.get("disabled") else {}
        hidden = forms.HiddenInput().render(name, "0", attrs=hidden_attrs)
        checkbox = forms.CheckboxInput().render(name, options.get("checked") == "checked", attrs=attrs)

        return format_html(
            '<div class="form-group checkbox">{}<label for="{}">{} {}</label></div>',
            hidden,
            input_id(name),
            checkbox,
            label,
        )

    def _attrs(self, name: str, options: Dict[str, Any], extra_class: str = "") -> Dict[str, Any]:
        attrs: Dict[str, Any] = {
            "id": input_id(name),
            "class": f"{self.css_class} {extra_class}".strip(),
        }
        if options.get("placeholder"):
            attrs["placeholder"] = options["placeholder"]
        if options.get("disabled"):
            attrs["disabled"] = "disabled"
        return attrs

    def _render(
        self,
        widget_class: Type[forms.Widget],
        name: str,
        label: str,
        options: Options,
        extra_class: str = "",
    ) -> SafeString:
        options = options or {}
        widget = widget_class()
        html = widget.render(name, options.get("value"), attrs=self._attrs(name, options, extra_class))
        return self._group(name, label, html)

    def _group(self, name: str, label: str, widget_html: str) -> SafeString:
        return format_html(
            '<div class="form-group"><label for="{}">{}</label>{}</div>',
            input_id(name),
            label,
            widget_html,
        )

"""
Rule-based validation of submitted custom field values.

Administrators configure rules per field as pipe-delimited tokens, e.g.
``required|alpha_num|min:3|max:32``. A field with a custom pattern gets its
rules as a list instead so that ``|`` inside the pattern is preserved:
``["required", "regex:/^[0-9|-]+$/"]``.

Each token maps onto a Django validator or a small check. Empty values only
ever fail ``required``; the other rules are skipped for them.
"""

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Mapping, Optional, Union

from django.core.exceptions import ValidationError
from django.core.validators import (
    EmailValidator,
    MaxLengthValidator,
    MinLengthValidator,
    RegexValidator,
    URLValidator,
    validate_integer,
    validate_ipv46_address,
)
from django.utils.dateparse import parse_date, parse_datetime
from django.utils.translation import gettext as _

logger = logging.getLogger(__name__)

NUMERIC_RULES = {"numeric", "integer"}

REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
    # str patterns are already Unicode aware
    "u": 0,
}


class InvalidRuleError(ValueError):
    """A configured rule token is unknown or malformed."""


@dataclass
class Rule:
    """A parsed rule token, e.g. ``between:3,10`` -> ("between", ["3", "10"])."""

    name: str
    args: List[str] = field(default_factory=list)
    pattern: Optional["re.Pattern"] = None

    def __str__(self) -> str:
        if self.name == "regex" and self.pattern is not None:
            return f"regex:{self.pattern.pattern}"
        if self.args:
            return f"{self.name}:{','.join(self.args)}"
        return self.name


def compile_pattern(raw: str) -> "re.Pattern":
    """Compile ``/pattern/flags`` or a bare pattern."""
    pattern, flags = raw, 0
    if len(raw) > 1 and raw.startswith("/"):
        end = raw.rfind("/")
        if end > 0:
            pattern = raw[1:end]
            for flag in raw[end + 1:]:
                if flag not in REGEX_FLAGS:
                    raise InvalidRuleError(f"Unsupported regex flag '{flag}' in {raw!r}")
                flags |= REGEX_FLAGS[flag]
    try:
        return re.compile(pattern, flags)
    except re.error as e:
        raise InvalidRuleError(f"Invalid regex {raw!r}: {e}")


# name -> number of arguments (None = one or more, comma separated)
RULE_ARITY: Dict[str, Optional[int]] = {
    "required": 0,
    "email": 0,
    "url": 0,
    "ip": 0,
    "numeric": 0,
    "integer": 0,
    "alpha": 0,
    "alpha_num": 0,
    "alpha_dash": 0,
    "date": 0,
    "min": 1,
    "max": 1,
    "digits": 1,
    "between": 2,
    "in": None,
    "not_in": None,
    "regex": 1,
}


def parse_rule(token: str) -> Rule:
    """Parse one rule token. Raises InvalidRuleError for bad tokens."""
    name, _sep, param = token.strip().partition(":")
    name = name.strip()

    if name not in RULE_ARITY:
        raise InvalidRuleError(f"Unknown validation rule '{name}'")

    if name == "regex":
        if not param:
            raise InvalidRuleError("The regex rule needs a pattern")
        return Rule(name=name, args=[param], pattern=compile_pattern(param))

    args = [arg.strip() for arg in param.split(",")] if param else []
    arity = RULE_ARITY[name]

    if arity is None:
        if not args:
            raise InvalidRuleError(f"The {name} rule needs at least one value")
    elif len(args) != arity:
        raise InvalidRuleError(f"The {name} rule takes {arity} argument(s), got {len(args)}")

    if name in ("min", "max", "between", "digits"):
        for arg in args:
            try:
                Decimal(arg)
            except InvalidOperation:
                raise InvalidRuleError(f"The {name} rule needs numeric arguments, got {arg!r}")

    return Rule(name=name, args=args)


def parse_rules(rules: Union[str, List[str], None]) -> List[Rule]:
    """Parse a pipe-delimited rule string or a list of rule tokens."""
    if not rules:
        return []
    tokens = rules.split("|") if isinstance(rules, str) else rules
    return [parse_rule(token) for token in tokens if token and token.strip()]


def _is_empty(value: Optional[str]) -> bool:
    return value is None or str(value).strip() == ""


def _as_number(value: str) -> Optional[Decimal]:
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return None
    return number if number.is_finite() else None


def _run(validator: Callable[[str], None], value: str) -> bool:
    try:
        validator(value)
    except ValidationError:
        return False
    return True


class Validation:
    """Outcome of one validation run."""

    def __init__(self, errors: Dict[str, List[str]]):
        self._errors = errors

    def fails(self) -> bool:
        return bool(self._errors)

    def passes(self) -> bool:
        return not self._errors

    def messages(self) -> Dict[str, List[str]]:
        return {slug: list(messages) for slug, messages in self._errors.items()}


class RuleValidator:
    """Checks data against a rule table of field slug -> rules."""

    def make(self, data: Mapping[str, str], rules: Mapping[str, Union[str, List[str]]]) -> Validation:
        errors: Dict[str, List[str]] = {}

        for attribute, field_rules in rules.items():
            parsed = parse_rules(field_rules)
            value = data.get(attribute)
            messages = self.check(attribute, value, parsed)
            if messages:
                errors[attribute] = messages

        if errors:
            logger.debug(f"Validation failed for {sorted(errors)}")
        return Validation(errors)

    def check(self, attribute: str, value: Optional[str], rules: List[Rule]) -> List[str]:
        """Return the error messages for one value."""
        label = attribute.replace("_", " ")
        names = {rule.name for rule in rules}

        if _is_empty(value):
            if "required" in names:
                return [_("The %(attribute)s field is required.") % {"attribute": label}]
            return []

        value = str(value)
        numeric = bool(names & NUMERIC_RULES)
        messages = []
        for rule in rules:
            message = self._check_rule(rule, value, label, numeric)
            if message:
                messages.append(message)
        return messages

    def _check_rule(self, rule: Rule, value: str, label: str, numeric: bool) -> Optional[str]:
        params = {"attribute": label}
        name = rule.name

        if name == "required":
            return None

        if name == "email":
            if not _run(EmailValidator(), value):
                return _("The %(attribute)s must be a valid email address.") % params

        elif name == "url":
            if not _run(URLValidator(), value):
                return _("The %(attribute)s format is invalid.") % params

        elif name == "ip":
            if not _run(validate_ipv46_address, value):
                return _("The %(attribute)s must be a valid IP address.") % params

        elif name == "numeric":
            if _as_number(value) is None:
                return _("The %(attribute)s must be a number.") % params

        elif name == "integer":
            if not _run(validate_integer, value.strip()):
                return _("The %(attribute)s must be an integer.") % params

        elif name == "alpha":
            if not value.isalpha():
                return _("The %(attribute)s may only contain letters.") % params

        elif name == "alpha_num":
            if not value.isalnum():
                return _("The %(attribute)s may only contain letters and numbers.") % params

        elif name == "alpha_dash":
            if not _run(RegexValidator(r"^[\w-]+\Z"), value):
                return _("The %(attribute)s may only contain letters, numbers, dashes and underscores.") % params

        elif name == "date":
            try:
                parsed = parse_date(value) or parse_datetime(value)
            except ValueError:
                parsed = None
            if parsed is None:
                return _("The %(attribute)s is not a valid date.") % params

        elif name == "digits":
            params["digits"] = rule.args[0]
            if not (value.isdigit() and len(value) == int(Decimal(rule.args[0]))):
                return _("The %(attribute)s must be %(digits)s digits.") % params

        elif name in ("min", "max", "between"):
            return self._check_size(rule, value, params, numeric)

        elif name == "in":
            if value not in rule.args:
                return _("The selected %(attribute)s is invalid.") % params

        elif name == "not_in":
            if value in rule.args:
                return _("The selected %(attribute)s is invalid.") % params

        elif name == "regex":
            if not _run(RegexValidator(rule.pattern), value):
                return _("The %(attribute)s format is invalid.") % params

        return None

    def _check_size(self, rule: Rule, value: str, params: dict, numeric: bool) -> Optional[str]:
        bounds = [Decimal(arg) for arg in rule.args]

        if numeric:
            number = _as_number(value)
            if number is None:
                # Reported by the numeric/integer rule
                return None
            if rule.name == "min" and number < bounds[0]:
                params["min"] = rule.args[0]
                return _("The %(attribute)s must be at least %(min)s.") % params
            if rule.name == "max" and number > bounds[0]:
                params["max"] = rule.args[0]
                return _("The %(attribute)s may not be greater than %(max)s.") % params
            if rule.name == "between" and not (bounds[0] <= number <= bounds[1]):
                params.update(min=rule.args[0], max=rule.args[1])
                return _("The %(attribute)s must be between %(min)s and %(max)s.") % params
            return None

        if rule.name == "min":
            if not _run(MinLengthValidator(int(bounds[0])), value):
                params["min"] = rule.args[0]
                return _("The %(attribute)s must be at least %(min)s characters.") % params
        elif rule.name == "max":
            if not _run(MaxLengthValidator(int(bounds[0])), value):
                params["max"] = rule.args[0]
                return _("The %(attribute)s may not be greater than %(max)s characters.") % params
        elif rule.name == "between":
            if not (bounds[0] <= len(value) <= bounds[1]):
                params.update(min=rule.args[0], max=rule.args[1])
                return _("The %(attribute)s must be between %(min)s and %(max)s characters.") % params
        return None

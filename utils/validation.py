"""WTForms helpers for validating JSON request bodies."""
from __future__ import annotations

from typing import Mapping, Optional, Type

from wtforms import Field, Form, StringField


class PayloadValidationError(Exception):
    """Raised when a JSON body fails form validation; carries field-level errors."""

    def __init__(self, errors: Mapping, message: str = "Validation failed") -> None:
        super().__init__(message)
        self.message = message
        self.errors = dict(errors)


def strip_text(value):
    return value.strip() if isinstance(value, str) else value


class JSONStringField(StringField):
    """String field bound from decoded JSON; rejects objects and arrays."""

    def process_data(self, value):
        self.data = None
        if value is None:
            return
        if isinstance(value, (dict, list, tuple)):
            raise ValueError("Must be a string.")
        self.data = value if isinstance(value, str) else str(value)


class JSONField(Field):
    """Keeps the decoded JSON value as-is; shape checks live in inline validators."""

    def process_data(self, value):
        self.data = value

    def _value(self):
        return ""


def bind_json_form(form_cls: Type[Form], payload: Optional[Mapping]) -> Form:
    data = {}
    for key, value in (payload or {}).items():
        if value is None:
            continue
        data[key] = value
    return form_cls(data=data)


def validate_json(form_cls: Type[Form], payload: Optional[Mapping], error_cls=PayloadValidationError) -> Form:
    if payload is not None and not isinstance(payload, Mapping):
        raise error_cls({"body": ["Expected a JSON object."]})
    form = bind_json_form(form_cls, payload)
    if not form.validate():
        raise error_cls(form.errors)
    return form

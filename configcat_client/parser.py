"""Decoding of raw configuration documents into setting values."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

SettingValue = Union[bool, int, float, str]

SETTING_TYPE_BOOL = 0
SETTING_TYPE_STRING = 1
SETTING_TYPE_INT = 2
SETTING_TYPE_DOUBLE = 3


class ParseError(ValueError):
    """Raised when a configuration document or setting cannot be decoded."""


@dataclass(slots=True)
class User:
    """Attributes of the user a setting is evaluated for."""

    identifier: str
    email: str = ""
    country: str = ""
    custom: Dict[str, str] = field(default_factory=dict)

    def attribute(self, name: str) -> Optional[str]:
        if name == "Identifier":
            return self.identifier
        if name == "Email":
            return self.email or None
        if name == "Country":
            return self.country or None
        return self.custom.get(name)


Evaluator = Callable[[str, Mapping[str, Any], Optional[User]], Any]


def serve_default_value(key: str, setting: Mapping[str, Any], user: Optional[User]) -> Any:
    return setting.get("Value")


class ConfigParser:
    """Turn raw JSON text into typed setting values.

    Targeting rules are not interpreted here; pass an ``evaluator`` to apply
    them. The default one serves each setting's ``Value``.
    """

    def __init__(self, evaluator: Optional[Evaluator] = None) -> None:
        self._evaluator = evaluator or serve_default_value

    def parse(self, json_text: str) -> Dict[str, Any]:
        if not json_text:
            raise ParseError("configuration document is empty")
        try:
            decoded = json.loads(json_text)
        except json.JSONDecodeError as exc:
            raise ParseError("configuration document is not valid JSON") from exc
        if not isinstance(decoded, dict):
            raise ParseError("configuration document must be a JSON object")
        return decoded

    def keys(self, json_text: str) -> Tuple[str, ...]:
        return tuple(self.parse(json_text))

    def parse_value(self, key: str, json_text: str, user: Optional[User] = None) -> SettingValue:
        document = self.parse(json_text)
        if key not in document:
            raise ParseError(f"setting '{key}' not found")
        raw = document[key]
        if isinstance(raw, Mapping):
            value = self._evaluator(key, raw, user)
            setting_type = raw.get("SettingType")
        else:
            value = raw
            setting_type = None
        return _coerce(key, value, setting_type)


def _coerce(key: str, value: Any, setting_type: Optional[int]) -> SettingValue:
    if isinstance(value, (dict, list)) or value is None:
        raise ParseError(f"setting '{key}' does not hold a scalar value")
    if setting_type is None:
        return value
    if setting_type == SETTING_TYPE_BOOL:
        if not isinstance(value, bool):
            raise ParseError(f"setting '{key}' is not a boolean")
        return value
    if setting_type == SETTING_TYPE_STRING:
        return str(value)
    if setting_type in (SETTING_TYPE_INT, SETTING_TYPE_DOUBLE):
        if isinstance(value, bool):
            raise ParseError(f"setting '{key}' is not a number")
        if setting_type == SETTING_TYPE_INT and isinstance(value, float) and not value.is_integer():
            raise ParseError(f"setting '{key}' is not a whole number: {value}")
        try:
            return int(value) if setting_type == SETTING_TYPE_INT else float(value)
        except (TypeError, ValueError) as exc:
            raise ParseError(f"setting '{key}' cannot be converted: {exc}") from exc
    raise ParseError(f"setting '{key}' has unknown type {setting_type!r}")


def matches_default_type(value: SettingValue, default: Any) -> bool:
    """Check whether ``value`` can stand in for ``default``."""

    if default is None:
        return True
    if isinstance(default, bool):
        return isinstance(value, bool)
    if isinstance(default, int):
        return isinstance(value, int) and not isinstance(value, bool)
    if isinstance(default, float):
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    return isinstance(value, type(default))


__all__ = [
    "ConfigParser",
    "Evaluator",
    "ParseError",
    "SettingValue",
    "User",
    "matches_default_type",
    "serve_default_value",
]

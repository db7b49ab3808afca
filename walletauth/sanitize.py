from __future__ import annotations

import re
import unicodedata
from typing import Any, Dict, Mapping

_KEY_DISALLOWED = re.compile(r"[^A-Za-z0-9_\-]")
_ALPHA_DISALLOWED = re.compile(r"[^A-Za-z]")
_TAG = re.compile(r"<[^>]*>?")
_CONTROL = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")


def clean_key(key: Any) -> str:
    """Attribute names: ASCII letters, digits, underscore and hyphen only."""
    return _KEY_DISALLOWED.sub("", str(key))


def clean_alpha(value: Any) -> str:
    return _ALPHA_DISALLOWED.sub("", str(value))


def clean_text(value: str) -> str:
    """
    Plain text suitable for rendering or persisting as an account field:
    markup is stripped, control characters removed, unicode normalized.
    """
    text = unicodedata.normalize("NFC", value)
    text = _TAG.sub("", text)
    text = _CONTROL.sub("", text)
    return text.strip()


def clean_result(result: Any) -> Dict[str, str]:
    """
    Sanitize a verifier result mapping.

    Scalars are stringified; nulls and nested structures are dropped so
    nothing but flat strings ever reaches the store.
    """
    if not isinstance(result, Mapping):
        return {}

    cleaned: Dict[str, str] = {}
    for raw_key, raw_value in result.items():
        key = clean_key(raw_key)
        if not key:
            continue
        if isinstance(raw_value, bool):
            value = "true" if raw_value else "false"
        elif isinstance(raw_value, (str, int, float)):
            value = clean_text(str(raw_value))
        else:
            continue
        cleaned[key] = value
    return cleaned

from __future__ import annotations

import re
import time
import unicodedata
from typing import Any

_COMBINING = re.compile("[\u0300-\u036f]")
_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")
_EMAIL = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"

FALLBACK_SLUG = "organization"


def slugify(name: str) -> str:
    """
    "Iglesia Comunidad de Fé" -> "iglesia-comunidad-de-fe".
    Already-clean input comes back unchanged.
    """
    value = unicodedata.normalize("NFD", (name or "").lower())
    value = _COMBINING.sub("", value)
    value = _DISALLOWED.sub("", value)
    value = _WHITESPACE.sub("-", value)
    value = _HYPHENS.sub("-", value)
    return value.strip().strip("-")


def to_base36(n: int) -> str:
    if n < 0:
        raise ValueError("base36 of a negative number")
    if n == 0:
        return "0"
    digits = []
    while n:
        n, rem = divmod(n, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def timestamp_suffix(offset: int = 0) -> str:
    return to_base36(int(time.time() * 1000) + offset)


def is_valid_email(email: str) -> bool:
    return bool(_EMAIL.match(email or ""))


def clean_str(value: Any) -> str | None:
    """Strip; empty -> None."""
    if value is None:
        return None
    return str(value).strip() or None


def parse_bool(value: Any) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def parse_int(value: Any) -> int | None:
    """Parse an optional integer id; raises ValueError on garbage."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    s = str(value).strip()
    if not s:
        return None
    return int(s)


def request_payload() -> dict[str, Any]:
    """JSON body or form fields, whichever the client sent."""
    from flask import request

    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_id(value: Any, field: str) -> int | None:
    from app.ecclesia.errors import validation_failed

    try:
        return parse_int(value)
    except ValueError:
        raise validation_failed(f"{field} must be an integer id.") from None


def payload_text(payload: dict[str, Any], field: str, *, strip: bool = True) -> str:
    """Text field of a JSON/form payload; missing or null -> "". Numbers, lists and objects are rejected."""
    from app.ecclesia.errors import validation_failed

    value = payload.get(field)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise validation_failed(f"{field} must be text.")
    return value.strip() if strip else value

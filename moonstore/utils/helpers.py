"""Helper functions."""

import time

from moonstore.core.exceptions import ValidationError


def now_ms() -> int:
    """Current time as integer milliseconds since the epoch."""
    return int(time.time() * 1000)


def require_name(value: str | None, what: str) -> str:
    """Return the value stripped, raise ValidationError if it is empty."""
    if value is None or not str(value).strip():
        msg = f"{what} must not be empty"
        raise ValidationError(msg)
    return str(value).strip()


def require_username(value: str | None) -> str:
    """Like require_name, but also rejects ':' which separates key segments."""
    username = require_name(value, "username")
    if ":" in username:
        msg = f"username '{username}' must not contain ':'"
        raise ValidationError(msg)
    return username


def make_record_key(source: str, external_id: str) -> str:
    """Build the composite record key used for play records, favorites and skip configs."""
    source = require_name(source, "source")
    external_id = require_name(external_id, "id")
    if "+" in source:
        msg = f"source '{source}' must not contain '+'"
        raise ValidationError(msg)
    return f"{source}+{external_id}"


def split_record_key(record_key: str) -> tuple[str, str]:
    """Split a composite record key back into (source, id)."""
    source, sep, external_id = record_key.partition("+")
    if not sep or not source or not external_id:
        msg = f"Invalid record key '{record_key}', expected 'source+id'"
        raise ValidationError(msg)
    return source, external_id


def to_base36(number: int) -> str:
    """Represent a non-negative int in base 36."""
    alphabet = "0123456789abcdefghijklmnopqrstuvwxyz"
    if number == 0:
        return "0"

    digits: list[str] = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(alphabet[remainder])
    return "".join(reversed(digits))

"""Shared helpers — number checks and formatting, hashing, timestamps."""

from __future__ import annotations

import hashlib
import math
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path


def is_finite_number(value: object) -> bool:
    """True for real ``int``/``float`` values that are finite (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value)


def format_number(value: float) -> str:
    """Render *value* in its natural textual form.

    Uses the shortest round-tripping digits.  Integral values drop the
    fractional part (``2024.0`` -> ``"2024"``).  Plain notation is used for
    magnitudes in ``[1e-7, 1e21)``, padded with zeros rather than inventing
    digits past float precision; outside that range the exponent form is
    ``1e-7`` / ``1.5e+21``.
    """
    if isinstance(value, bool):
        raise TypeError("format_number expects a number, not bool")
    if isinstance(value, int):
        return str(value)
    if not math.isfinite(value):
        if math.isnan(value):
            return "NaN"
        return "Infinity" if value > 0 else "-Infinity"
    if value == 0:
        return "0"

    sign = "-" if value < 0 else ""
    parts = Decimal(repr(abs(value))).normalize().as_tuple()
    digits = "".join(map(str, parts.digits))
    # position of the decimal point relative to the first digit
    point = len(digits) + parts.exponent

    if len(digits) <= point <= 21:
        text = digits + "0" * (point - len(digits))
    elif 0 < point <= 21:
        text = f"{digits[:point]}.{digits[point:]}"
    elif -6 < point <= 0:
        text = "0." + "0" * -point + digits
    else:
        exp = point - 1
        mantissa = digits if len(digits) == 1 else f"{digits[0]}.{digits[1:]}"
        text = f"{mantissa}e{'+' if exp >= 0 else '-'}{abs(exp)}"
    return sign + text


def sha256_file(path: Path) -> str:
    """Return the hex SHA-256 digest of *path*."""
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(8192), b""):
            digest.update(chunk)
    return digest.hexdigest()


def utcnow_iso() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(timezone.utc).isoformat()

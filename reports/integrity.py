"""Tamper fingerprint for shared daily-report copies.

The fingerprint is a 32-bit rolling hash over a compact JSON rendering of six
report fields. It catches accidental or casual edits to a printed or exported
copy; it is not a MAC and must not be relied on against a deliberate forger.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from decimal import Decimal

from common.exceptions import TamperedOrInvalid

FINGERPRINT_FIELDS = ("id", "report_date", "station_id", "total_sales", "status", "cash_collected")
FINGERPRINT_LENGTH = 8


def _field(report, name):
    if isinstance(report, Mapping):
        return report.get(name)
    return getattr(report, name, None)


def _canonical_value(value):
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, float, Decimal)):
        number = Decimal(str(value))
        if number == number.to_integral_value():
            return int(number)
        return float(number)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def canonical_payload(report) -> str:
    payload = {name: _canonical_value(_field(report, name)) for name in FINGERPRINT_FIELDS}
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def _rolling_hash(text: str) -> int:
    value = 0
    encoded = text.encode("utf-16-le")
    for index in range(0, len(encoded), 2):
        unit = encoded[index] | (encoded[index + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value & 0x80000000:
        value -= 0x100000000
    return value


def fingerprint(report) -> str:
    digest = format(abs(_rolling_hash(canonical_payload(report))), "x")
    return digest[:FINGERPRINT_LENGTH].rjust(FINGERPRINT_LENGTH, "0").upper()


def verify(report, supplied) -> str:
    """Return the fingerprint when ``supplied`` matches it, else raise."""
    supplied = (supplied or "").strip()
    if report is None or not supplied:
        raise TamperedOrInvalid()
    expected = fingerprint(report)
    if expected != supplied.upper():
        raise TamperedOrInvalid()
    return expected

"""US five-digit ZIP code enumeration and normalisation."""

from __future__ import annotations

import re
from typing import Iterator

from zip_radius.common.constants import ZIP_CODE_MAX, ZIP_CODE_MIN

ZIP_CODE_RE = re.compile(r"[0-9]{5}")
_ZIP_PLUS_FOUR_RE = re.compile(r"([0-9]{3,5})(?:-[0-9]{4})?")


def is_valid_zip_code(value: str) -> bool:
    return bool(ZIP_CODE_RE.fullmatch(value))


def format_zip_code(number: int) -> str:
    if not ZIP_CODE_MIN <= number <= ZIP_CODE_MAX:
        raise ValueError(f"ZIP code number out of range: {number}")
    return f"{number:05d}"


def enumerate_zip_codes(start: int = ZIP_CODE_MIN, stop: int = ZIP_CODE_MAX) -> Iterator[str]:
    """Yield zero-padded codes from ``start`` to ``stop`` inclusive."""
    for number in range(start, stop + 1):
        yield format_zip_code(number)


def normalise_zip_code(raw: str | int | None) -> str | None:
    """Return a zero-padded five digit code, or None if ``raw`` is not one.

    Spreadsheet round-trips strip leading zeros ("2134") and some sources
    carry ZIP+4 ("02134-1234"); both normalise to "02134".
    """
    if raw is None:
        return None
    cleaned = str(raw).strip()
    if not cleaned:
        return None
    match = _ZIP_PLUS_FOUR_RE.fullmatch(cleaned)
    if not match:
        return None
    return match.group(1).zfill(5)

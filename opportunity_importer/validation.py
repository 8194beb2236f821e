"""Validation of uploaded opportunity rows."""
from __future__ import annotations

import math
import re
from typing import Any, Iterable, List, Mapping

from .models import ValidatedRecord

CLIENT_NAME = "Client Name"
PHONE_NUMBER = "Phone Number"
EMAIL = "Email"
SOURCE = "Source"
NOTES = "Notes"
PREFERRED_LANGUAGE = "Preferred Language"
PREFERRED_DIALECT = "Preferred Dialect"

REQUIRED_COLUMNS = (CLIENT_NAME, PHONE_NUMBER, PREFERRED_LANGUAGE, PREFERRED_DIALECT)
OPTIONAL_COLUMNS = (EMAIL, SOURCE, NOTES)

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PHONE_PATTERN = re.compile(r"^\+?[0-9]{7,15}$")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")


def clean_text(value: Any) -> str:
    """Render a spreadsheet cell as trimmed text; blanks become ``""``."""

    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, float):
        if math.isnan(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def normalise_phone(phone: str) -> str:
    """Strip spaces, dashes and parentheses from a phone number."""

    return _PHONE_SEPARATORS.sub("", phone)


def validate_record(row: Mapping[str, Any]) -> ValidatedRecord:
    """Validate one raw row, collecting every problem rather than stopping at the first."""

    client_name = clean_text(row.get(CLIENT_NAME))
    phone = clean_text(row.get(PHONE_NUMBER))
    email = clean_text(row.get(EMAIL))
    language = clean_text(row.get(PREFERRED_LANGUAGE))
    dialect = clean_text(row.get(PREFERRED_DIALECT))

    errors: List[str] = []
    for column, value in (
        (CLIENT_NAME, client_name),
        (PHONE_NUMBER, phone),
        (PREFERRED_LANGUAGE, language),
        (PREFERRED_DIALECT, dialect),
    ):
        if not value:
            errors.append(f"{column} is required")

    if email and not _EMAIL_PATTERN.match(email):
        errors.append("Invalid email format")

    if phone and not _PHONE_PATTERN.match(normalise_phone(phone)):
        errors.append(f'Invalid phone format: "{phone}". Use numbers only, 7-15 digits')

    return ValidatedRecord(
        client_name=client_name,
        phone=phone,
        email=email,
        source=clean_text(row.get(SOURCE)),
        notes=clean_text(row.get(NOTES)),
        preferred_language=language,
        preferred_dialect=dialect,
        errors=tuple(errors),
    )


def validate_records(rows: Iterable[Mapping[str, Any]]) -> List[ValidatedRecord]:
    return [validate_record(row) for row in rows]


__all__ = [
    "REQUIRED_COLUMNS",
    "OPTIONAL_COLUMNS",
    "clean_text",
    "normalise_phone",
    "validate_record",
    "validate_records",
]

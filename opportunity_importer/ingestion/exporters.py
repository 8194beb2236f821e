"""Export utilities for outreach results and the import template."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Sequence, Union

import pandas as pd

from ..models import OutreachResult
from ..validation import (
    CLIENT_NAME,
    EMAIL,
    NOTES,
    PHONE_NUMBER,
    PREFERRED_DIALECT,
    PREFERRED_LANGUAGE,
    SOURCE,
)
from .loaders import SHEET_NAME

PathLike = Union[str, Path]

EXPORT_COLUMNS = ["response_status", "opportunity_name", "client_name", "client_phone", "timestamp"]
TEMPLATE_FILENAME = "opportunity_import_template.xlsx"

_TEMPLATE_ROWS: List[Dict[str, str]] = [
    {
        CLIENT_NAME: "Ahmed Tawfeeq",
        PHONE_NUMBER: "201090190379",
        EMAIL: "ahmed@example.com",
        SOURCE: "WhatsApp DM",
        NOTES: "Interested in coaching program",
        PREFERRED_LANGUAGE: "Arabic-Egyptian dialect",
        PREFERRED_DIALECT: "Egyptian dialect",
    },
    {
        CLIENT_NAME: "John Smith",
        PHONE_NUMBER: "1234567890",
        EMAIL: "john@example.com",
        SOURCE: "Website",
        NOTES: "Interested in premium package",
        PREFERRED_LANGUAGE: "English-American dialect",
        PREFERRED_DIALECT: "American dialect",
    },
]


def export_filename(batch_id: str) -> str:
    return f"outreach_results_{batch_id}.csv"


def results_to_dataframe(results: Sequence[OutreachResult]) -> pd.DataFrame:
    """Convert outreach results into a frame with the export column order."""

    return pd.DataFrame([result.as_row() for result in results], columns=EXPORT_COLUMNS)


def export_results_csv(results: Sequence[OutreachResult]) -> bytes:
    """Render outreach results as CSV: a header line, then one line per result in input order."""

    dataframe = results_to_dataframe(results)
    return dataframe.to_csv(index=False, lineterminator="\n").encode("utf-8")


def write_results_csv(path: PathLike, results: Sequence[OutreachResult]) -> Path:
    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(export_results_csv(results))
    return destination


def template_dataframe() -> pd.DataFrame:
    return pd.DataFrame(_TEMPLATE_ROWS)


def write_import_template(path: PathLike) -> Path:
    """Write the example workbook users fill in before uploading."""

    destination = Path(path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    template_dataframe().to_excel(destination, index=False, sheet_name=SHEET_NAME, engine="openpyxl")
    return destination


__all__ = [
    "EXPORT_COLUMNS",
    "TEMPLATE_FILENAME",
    "export_filename",
    "export_results_csv",
    "results_to_dataframe",
    "template_dataframe",
    "write_import_template",
    "write_results_csv",
]

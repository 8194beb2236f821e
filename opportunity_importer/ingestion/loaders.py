"""Utilities for reading opportunity rows out of uploaded workbooks."""
from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Sequence, Union

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from ..validation import REQUIRED_COLUMNS, clean_text

LOGGER = logging.getLogger(__name__)

SHEET_NAME = "Opportunities"

MISSING_SHEET = "missing_sheet"
INSUFFICIENT_ROWS = "insufficient_rows"
MISSING_COLUMNS = "missing_columns"
UNREADABLE = "unreadable"
UNSUPPORTED_TYPE = "unsupported_type"

_WORKBOOK_SUFFIXES = {".xlsx", ".xlsm"}

WorkbookSource = Union[str, Path, bytes, bytearray, BinaryIO]
RawRecord = Dict[str, str]


class FileFormatError(ValueError):
    """Raised when an uploaded workbook cannot be turned into opportunity rows."""

    def __init__(
        self,
        kind: str,
        message: str,
        *,
        title: str = "File Error",
        description: str | None = None,
        missing_columns: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.title = title
        self.description = description or message
        self.missing_columns = tuple(missing_columns)


class UnsupportedFileTypeError(FileFormatError):
    """Raised when the upload is not an Excel workbook."""

    def __init__(self, suffix: str) -> None:
        super().__init__(
            UNSUPPORTED_TYPE,
            f"Unsupported file type '{suffix}'. Upload an .xlsx workbook.",
            title="Unsupported File",
        )


def read_opportunity_rows(source: WorkbookSource) -> List[RawRecord]:
    """Read the ``Opportunities`` sheet of a workbook into raw rows.

    Parameters
    ----------
    source:
        Path to an ``.xlsx`` file, the raw bytes of one, or a binary file
        object positioned at the start of the workbook.

    Every returned row maps each header to the trimmed cell text; empty cells
    become ``""``. Fully blank rows are dropped before the row count check.
    """

    sheets = _read_workbook(source)
    if SHEET_NAME not in sheets:
        raise FileFormatError(
            MISSING_SHEET,
            f'No "{SHEET_NAME}" sheet found. Make sure your file has a sheet named "{SHEET_NAME}".',
            title="Wrong Sheet Name",
            description=f'Your file must have a sheet named "{SHEET_NAME}". Please check the sheet name.',
        )

    rows = [row for row in _sheet_rows(sheets[SHEET_NAME]) if not _row_is_empty(row)]
    if len(rows) < 2:
        raise FileFormatError(
            INSUFFICIENT_ROWS,
            "File needs at least a header row and one data row.",
            title="Insufficient Data",
            description="Please add at least one row of opportunity data.",
        )

    header = [clean_text(cell) for cell in rows[0]]
    missing = [column for column in REQUIRED_COLUMNS if column not in header]
    if missing:
        joined = ", ".join(missing)
        raise FileFormatError(
            MISSING_COLUMNS,
            f"Missing required columns: {joined}",
            title="Missing Columns",
            description=f"Please add these columns: {joined}",
            missing_columns=missing,
        )

    records: List[RawRecord] = []
    for cells in rows[1:]:
        record: RawRecord = {}
        for index, column in enumerate(header):
            if not column:
                continue
            record[column] = clean_text(cells[index]) if index < len(cells) else ""
        records.append(record)

    LOGGER.debug("Read %s rows from the %s sheet", len(records), SHEET_NAME)
    return records


def _read_workbook(source: WorkbookSource) -> Dict[str, pd.DataFrame]:
    if isinstance(source, (str, Path)):
        path = Path(source)
        if path.suffix.lower() not in _WORKBOOK_SUFFIXES:
            raise UnsupportedFileTypeError(path.suffix)
        handle: Any = path
    elif isinstance(source, (bytes, bytearray)):
        handle = io.BytesIO(bytes(source))
    else:
        handle = source

    try:
        return pd.read_excel(handle, sheet_name=None, header=None, dtype=object, engine="openpyxl")
    except (ValueError, OSError, KeyError, zipfile.BadZipFile, InvalidFileException) as exc:
        LOGGER.warning("Failed to parse uploaded workbook: %s", exc)
        raise FileFormatError(
            UNREADABLE,
            "Failed to read Excel file. Please make sure it's a valid .xlsx file.",
            description="Failed to parse the uploaded file. Please check the format and try again.",
        ) from exc


def _sheet_rows(frame: pd.DataFrame) -> List[List[Any]]:
    return [[None if pd.isna(value) else value for value in values] for values in frame.itertuples(index=False, name=None)]


def _row_is_empty(row: Sequence[Any]) -> bool:
    return all(not clean_text(value) for value in row)


__all__ = [
    "SHEET_NAME",
    "MISSING_SHEET",
    "INSUFFICIENT_ROWS",
    "MISSING_COLUMNS",
    "UNREADABLE",
    "UNSUPPORTED_TYPE",
    "FileFormatError",
    "UnsupportedFileTypeError",
    "read_opportunity_rows",
]

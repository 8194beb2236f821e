"""Reading uploaded opportunity workbooks and exporting outreach results."""

from .exporters import export_filename, export_results_csv, write_import_template, write_results_csv
from .loaders import FileFormatError, UnsupportedFileTypeError, read_opportunity_rows

__all__ = [
    "FileFormatError",
    "UnsupportedFileTypeError",
    "read_opportunity_rows",
    "export_filename",
    "export_results_csv",
    "write_import_template",
    "write_results_csv",
]

"""
Bulk import and export of investors, companies and investments (JSON and CSV).
"""

from app.import_data.csv_format import csv_parse, csv_stringify
from app.import_data.import_export import ImportExportService

__all__ = ["ImportExportService", "csv_parse", "csv_stringify"]

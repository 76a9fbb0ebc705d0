"""
CSV encoding for import/export.

The header comes from the keys of the first row. Cells are quoted only when
they contain a comma, quote or newline; quotes are doubled. On parse, blank
lines are dropped and empty cells come back as None.
"""

import csv
import io
import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def csv_stringify(rows: List[Dict[str, Any]]) -> str:
    if not rows:
        return ""

    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(header)) for header in headers])
    return buffer.getvalue().rstrip("\n")


def csv_parse(text: str) -> List[Dict[str, Optional[str]]]:
    if not text or not text.strip():
        return []

    reader = csv.reader(io.StringIO(text.strip("\n")))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        return []

    headers = [h.strip() for h in rows[0]]
    return [
        {
            header: (values[i] if i < len(values) and values[i] != "" else None)
            for i, header in enumerate(headers)
        }
        for values in rows[1:]
    ]

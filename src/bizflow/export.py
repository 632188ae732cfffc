"""CSV export of an in-memory collection snapshot."""

from __future__ import annotations

import csv
import io
import json
from typing import Any, Iterable

from bizflow.models import Record


def export_filename(collection: str) -> str:
    return f"{collection.title()}_Export.csv"


def no_data_message(collection: str) -> str:
    return f"No {collection} data available for export."


def _cell(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False)
    return value


def to_csv(records: Iterable[Record | dict[str, Any]], collection: str) -> str:
    """Render records as CSV: header of field names (no id), one row each.

    An empty collection yields a "no data" sentence instead of an empty
    string so it cannot be mistaken for a header-only export.
    """
    rows = [r.to_dict() if isinstance(r, Record) else {k: v for k, v in r.items() if k != "id"}
            for r in records]
    if not rows:
        return no_data_message(collection)

    headers = list(rows[0].keys())
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow([_cell(row.get(header)) for header in headers])
    return buffer.getvalue().rstrip("\n")

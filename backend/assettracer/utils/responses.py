"""
File download responses for export endpoints (CSV streams and PDFs).
"""
import csv
import io
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List

from fastapi.responses import Response, StreamingResponse


def format_csv_row(row: List[Any]) -> str:
    """Format a row as CSV, properly escaping values."""
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL)
    writer.writerow(["" if value is None else value for value in row])
    return output.getvalue()


def iter_csv(columns: List[str], rows: Iterable[Dict[str, Any]]) -> Iterator[str]:
    yield format_csv_row(columns)
    for row in rows:
        yield format_csv_row([row.get(column) for column in columns])


def csv_response(name: str, columns: List[str], rows: Iterable[Dict[str, Any]]) -> StreamingResponse:
    """`name` gets a date suffix, e.g. assets-2026-01-31.csv."""
    filename = f"{name}-{datetime.now(timezone.utc):%Y-%m-%d}.csv"
    return StreamingResponse(
        iter_csv(columns, rows),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

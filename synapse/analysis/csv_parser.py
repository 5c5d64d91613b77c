"""CSV parsing and schema inference (the `TabularParser` port).

Parsing rules:
- Bytes are decoded as UTF-8 (a leading BOM is dropped).
- The first row is the header; blank lines are skipped.
- Cells are read as raw strings first so that type inference sees exactly what
  the file contains.

Schema inference:
- Up to `SCHEMA_SAMPLE_SIZE` values per column are sampled.
- A column is `number` only if every sampled non-empty value parses as a finite
  number; otherwise it is `string`. `None` and blank strings count as empty.
- Values of `number` columns are then converted to `int`/`float`, empty cells
  to `None`.

Failure handling:
- Payloads above `MAX_UPLOAD_MB` raise `ParseError` before decoding.
- Undecodable bytes, empty input, and tokenizer errors raise `ParseError`.
"""

import asyncio
import io
import logging
import math
from typing import Any, Iterable

import pandas as pd

from synapse.core.scratchpad import ExtractedTable, SchemaField
from synapse.exceptions import ParseError
from synapse.extraction.native import validate_size


logger = logging.getLogger(__name__)

SCHEMA_SAMPLE_SIZE = 100

NUMBER = "number"
STRING = "string"


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def is_numeric(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return math.isfinite(value)
    try:
        return math.isfinite(float(str(value).strip()))
    except ValueError:
        return False


def infer_column_type(values: Iterable[Any]) -> str:
    for value in values:
        if is_empty(value):
            continue
        if not is_numeric(value):
            return STRING
    return NUMBER


def infer_schema(rows: list[dict[str, Any]], sample_size: int = SCHEMA_SAMPLE_SIZE) -> list[SchemaField]:
    """Infer `number`/`string` per column from the first `sample_size` rows."""
    if not rows:
        return []

    sample = rows[:sample_size]
    return [
        SchemaField(field=name, type=infer_column_type(row.get(name) for row in sample))
        for name in rows[0].keys()
    ]


def _to_number(value: Any) -> int | float | None:
    if is_empty(value):
        return None
    if isinstance(value, (int, float)):
        return value
    text = str(value).strip()
    try:
        return int(text)
    except ValueError:
        return float(text)


def coerce_rows(rows: list[dict[str, Any]], schema: list[SchemaField]) -> list[dict[str, Any]]:
    """Convert `number` columns to numeric values (empty -> None)."""
    numeric = {f.field for f in schema if f.type == NUMBER}
    coerced: list[dict[str, Any]] = []

    for row in rows:
        out: dict[str, Any] = {}
        for key, value in row.items():
            if key in numeric:
                try:
                    out[key] = _to_number(value)
                except ValueError:
                    # Only rows past the inference sample can hold such values.
                    out[key] = None
            else:
                out[key] = "" if value is None else value
        coerced.append(out)

    return coerced


def parse_csv(data: bytes) -> ExtractedTable:
    """Parse CSV bytes into ordered records plus an inferred schema."""
    try:
        validate_size(data)
    except ValueError as exc:
        raise ParseError(f"CSV parsing error: {exc}") from exc

    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError("CSV parsing error: file is not valid UTF-8 text.") from exc

    try:
        frame = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
        )
    except pd.errors.EmptyDataError as exc:
        raise ParseError("CSV parsing error: file is empty.") from exc
    except pd.errors.ParserError as exc:
        raise ParseError(f"CSV parsing error: {exc}") from exc

    if len(frame.columns) == 0:
        raise ParseError("CSV parsing error: no header row found.")

    rows = frame.to_dict(orient="records")
    schema = infer_schema(rows)
    if not schema:
        schema = [SchemaField(field=str(name), type=NUMBER) for name in frame.columns]

    logger.info("Parsed CSV: %d rows, %d columns", len(rows), len(schema))
    return ExtractedTable(rows=coerce_rows(rows, schema), schema=schema)


class PandasTabularParser:
    """`TabularParser` port running `parse_csv` in a worker thread."""

    async def parse(self, data: bytes) -> ExtractedTable:
        return await asyncio.to_thread(parse_csv, data)

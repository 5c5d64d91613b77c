"""Tabular analysis pipeline: chart descriptor + streamed narrative.

Chart field selection:
    - X axis: the first `string` field whose name contains `date`, `month` or
      `category` (case-insensitive); otherwise the first `string` field.
    - Y series: up to `MAX_SERIES` `number` fields, in schema order.
    - Missing either side raises `ChartFieldsError`, before any model call.

Narrative:
    One streamed generation call over the schema, the first `SAMPLE_ROWS` rows and
    the user request. Chunks are forwarded as `text` events as they arrive.
"""

import logging
from contextlib import aclosing
from typing import Any

from synapse.core.events import Emitter
from synapse.core.ports import TextGenerator
from synapse.core.scratchpad import SchemaField
from synapse.exceptions import ChartFieldsError, GenerationError
from synapse.prompting.prompt_builder import build_analysis_prompt


logger = logging.getLogger(__name__)

CHART_TYPE = "BarChart"
MAX_CHART_ROWS = 20
MAX_SERIES = 3
SAMPLE_ROWS = 10
CATEGORY_HINTS = ("date", "month", "category")


def select_chart_fields(schema: list[SchemaField]) -> tuple[str, list[str]]:
    """Return `(x_field, y_fields)` for a bar chart over `schema`."""
    strings = [f.field for f in schema if f.type == "string"]
    preferred = next(
        (name for name in strings if any(hint in name.lower() for hint in CATEGORY_HINTS)),
        None,
    )
    x_field = preferred or (strings[0] if strings else None)

    y_fields = [f.field for f in schema if f.type == "number" and f.field != x_field][:MAX_SERIES]

    if not x_field or not y_fields:
        raise ChartFieldsError(
            "Could not find suitable fields for charting. The data needs at least one "
            "text column (like a date or category) and one numeric column."
        )

    return x_field, y_fields


def build_chart_descriptor(rows: list[dict[str, Any]], schema: list[SchemaField]) -> dict[str, Any]:
    x_field, y_fields = select_chart_fields(schema)
    keep = [x_field, *y_fields]

    data = [
        {key: row.get(key) for key in keep}
        for row in rows[:MAX_CHART_ROWS]
    ]

    return {
        "type": CHART_TYPE,
        "dataKeyX": x_field,
        "dataKeysY": y_fields,
        "data": data,
    }


async def analyze_table(
    rows: list[dict[str, Any]],
    schema: list[SchemaField],
    query: str,
    generator: TextGenerator,
    emit: Emitter,
) -> tuple[str, dict[str, Any]]:
    """Stream a narrative analysis and return `(narrative, chart)`.

    Raises:
        ChartFieldsError: No usable categorical or numerical field.
        GenerationError: The narrative stream failed or produced nothing.
    """
    chart = build_chart_descriptor(rows, schema)

    await emit.thought("\nGenerating narrative analysis...")

    prompt = build_analysis_prompt(
        [f.to_dict() for f in schema],
        rows[:SAMPLE_ROWS],
        len(rows),
        query,
    )

    parts: list[str] = []
    stream = generator.generate_text_stream(prompt)
    async with aclosing(stream):
        async for chunk in stream:
            if not chunk:
                continue
            parts.append(chunk)
            await emit.text(chunk)

    narrative = "".join(parts)
    if not narrative.strip():
        raise GenerationError("Data analysis returned an empty narrative.")

    logger.info("Tabular analysis: %d rows, x=%s y=%s", len(rows), chart["dataKeyX"], chart["dataKeysY"])
    return narrative, chart

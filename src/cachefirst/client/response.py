"""Result formatting bridge -- maps :class:`~cachefirst.models.FetchResult` to the output system.

After a fetch completes, :func:`format_fetch_result` emits a provenance
status line to stderr and routes the body through
:meth:`~cachefirst.output.OutputManager.format_response`.

See Also:
    :mod:`cachefirst.output` -- the output manager that renders data.
"""

from __future__ import annotations

import json
from datetime import timedelta
from typing import Any, Optional

from cachefirst.models import FetchResult, Source
from cachefirst.output import get_output


def format_fetch_result(result: FetchResult) -> None:
    """Print the status line, any warnings, and the body of *result*."""
    output = get_output()

    output.info(status_line(result))
    if result.error:
        output.warning(f"Network unavailable, served cached data: {result.error}")
    for message in result.warnings:
        output.warning(message)

    data = extract_result_data(result)
    if data is not None:
        output.format_response(data, result.headers.get("content-type", "application/json"))


def status_line(result: FetchResult) -> str:
    """Return e.g. ``HTTP 200 (network)`` or ``HTTP 200 (cache, age 5m 3s, stale)``."""
    parts = [result.source.value]
    if result.source is Source.CACHE:
        parts.append(f"age {format_duration(result.age)}")
        if result.stale:
            parts.append("stale")
    return f"HTTP {result.status_code} ({', '.join(parts)})"


def extract_result_data(result: FetchResult) -> Any:
    """Decode the body as JSON, falling back to text; ``None`` when empty."""
    if not result.body:
        return None
    try:
        return json.loads(result.body)
    except ValueError:
        return result.text


def format_duration(value: Optional[timedelta]) -> str:
    """Render a duration as ``1d 2h``, ``5m 3s``, or ``0s``."""
    if value is None:
        return "-"
    seconds = int(value.total_seconds())
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes, seconds = divmod(seconds, 60)
    units = [(days, "d"), (hours, "h"), (minutes, "m"), (seconds, "s")]
    shown = [f"{amount}{unit}" for amount, unit in units if amount]
    return " ".join(shown[:2]) or "0s"

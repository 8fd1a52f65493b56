"""JSONL feed reader for local ingest runs.

A feed file holds one event envelope per line, exactly as the message bus
would deliver it.  ``iter_feed(path)`` yields, in file order, a
:class:`FeedLine` for every line that decodes to a JSON object and a
:class:`BadLine` for every line that does not.  Blank lines are skipped.

Envelope validation is not done here; the caller passes ``FeedLine.data``
to :func:`sightline.validate.validate_envelope`.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class FeedLine:
    """A line that decoded to a JSON object."""

    line_number: int
    data: dict[str, Any]


@dataclass(frozen=True)
class BadLine:
    """A line that is not a JSON object."""

    line_number: int
    raw_text: str
    reason: str


def parse_line(line_number: int, raw: str) -> FeedLine | BadLine:
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        return BadLine(line_number, raw, f"invalid JSON: {exc.msg} (col {exc.colno})")
    if not isinstance(parsed, dict):
        return BadLine(line_number, raw, f"expected JSON object, got {type(parsed).__name__}")
    return FeedLine(line_number, parsed)


def iter_feed(path: Path) -> Iterator[FeedLine | BadLine]:
    """Stream ``path`` one line at a time (UTF-8)."""
    with path.open(encoding="utf-8") as fh:
        for line_number, raw in enumerate(fh, start=1):
            raw = raw.strip()
            if raw:
                yield parse_line(line_number, raw)

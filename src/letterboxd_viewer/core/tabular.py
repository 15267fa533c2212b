from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ListTable:
    """A Letterboxd list export: a metadata block followed by the items."""

    metadata: dict[str, str] = field(default_factory=dict)
    items: list[dict[str, str]] = field(default_factory=list)


def _split_lines(text: str) -> list[str]:
    # Exports are sometimes saved with a BOM and/or CRLF line endings.
    text = text.lstrip("\ufeff")
    return [line.rstrip("\r") for line in text.split("\n")]


def _clean_header(cells: list[str]) -> list[str]:
    return [c.strip().replace('"', "") for c in cells]


def split_csv_line(line: str) -> list[str]:
    """Split one CSV line on commas that are outside double quotes.

    A quote only toggles the "inside quotes" state; there is no support for
    escaped quotes inside a quoted span. Quote characters are dropped and
    every field is trimmed.
    """

    fields: list[str] = []
    current: list[str] = []
    in_quotes = False

    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)

    fields.append("".join(current).strip())
    return fields


def _rows(header: list[str], lines: list[str]) -> list[dict[str, str]]:
    out: list[dict[str, str]] = []
    for line in lines:
        if not line.strip():
            continue
        values = split_csv_line(line)
        if len(values) != len(header):
            logger.debug("Dropping row with %d fields (expected %d)", len(values), len(header))
            continue
        out.append(dict(zip(header, values)))
    return out


def parse_table(text: str) -> list[dict[str, str]]:
    """Parse a single-header CSV export into field-keyed records.

    Rows whose field count differs from the header are dropped.
    """

    lines = _split_lines(text or "")
    start = next((i for i, line in enumerate(lines) if line.strip()), None)
    if start is None:
        return []

    header = _clean_header(lines[start].split(","))
    return _rows(header, lines[start + 1 :])


def parse_list_table(text: str) -> ListTable | None:
    """Parse a list export.

    Layout:
        line 1: export banner
        line 2: metadata header (Date, Name, Tags, URL, Description)
        line 3: metadata values
        line 4: blank
        line 5: item header (Position, Name, Year, URL, Description)
        line 6+: items

    Returns None when the file is too short to hold a single item.
    """

    lines = _split_lines((text or "").strip())
    if len(lines) < 6:
        return None

    meta_header = [h.strip() for h in lines[1].split(",")]
    meta_values = split_csv_line(lines[2])
    metadata = {
        name: (meta_values[i] if i < len(meta_values) else "")
        for i, name in enumerate(meta_header)
    }

    item_header = [h.strip() for h in lines[4].split(",")]
    return ListTable(metadata=metadata, items=_rows(item_header, lines[5:]))

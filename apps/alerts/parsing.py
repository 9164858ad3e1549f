"""
Provider-neutral text parsing helpers.

Some providers embed evaluation results in free text using a bracketed
mini-language, e.g. Grafana's valueString:

    [ var=A labels={instance=web-1} value=93.2 ], [ var=B labels={instance=web-1} value=1 ]

parse_value_string() groups the var=value pairs by their label set:

    [instance=web-1] A=93.2, B=1

Anything it cannot parse is returned unchanged.
"""

from __future__ import annotations

import re

_VALUE_GROUP = re.compile(
    r"\[\s*var=(?P<var>[^,\s]+)(?:\s+labels=\{(?P<labels>[^}]*)\})?\s+value=(?P<value>[^,\s\]]+)\s*\]"
)

_KEY_VALUE_LINE = re.compile(r"^\s*(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=\s*(?P<value>.*?)\s*$")


def parse_value_string(value_string: str | None) -> str:
    """Summarize a bracketed var=value string, or return it unchanged."""
    if not value_string or not isinstance(value_string, str):
        return ""

    matches = list(_VALUE_GROUP.finditer(value_string))
    if not matches:
        return value_string

    groups: dict[str, list[str]] = {}
    for match in matches:
        labels = (match.group("labels") or "").strip()
        pair = f"{match.group('var').strip()}={match.group('value').strip()}"
        groups.setdefault(labels, []).append(pair)

    parts = []
    for labels, pairs in groups.items():
        joined = ", ".join(pairs)
        parts.append(f"[{labels}] {joined}" if labels else joined)
    return "; ".join(parts)


def parse_key_value_block(text: str | None) -> tuple[dict[str, str], str]:
    """Split ``KEY=value`` segments out of a free-text block.

    Segments are separated by newlines or ``|``. Keys are upper-cased. Text
    that is not a ``KEY=value`` segment is returned as the remaining prose.

    Returns:
        (fields, remaining_text)
    """
    if not text:
        return {}, ""

    fields: dict[str, str] = {}
    prose: list[str] = []
    for line in text.splitlines():
        for segment in line.split("|"):
            segment = segment.strip()
            if not segment:
                continue
            match = _KEY_VALUE_LINE.match(segment)
            if match:
                fields[match.group("key").upper()] = match.group("value")
            else:
                prose.append(segment)
    return fields, " ".join(prose)

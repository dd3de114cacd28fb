"""
Shared plain-text report primitives.

Reports are read by the assistant verbatim and sometimes parsed, so the
vocabulary here is fixed: 80-column rules, bracketed ASCII glyphs, m:ss
durations and ISO dates.
"""

from __future__ import annotations

RULE_WIDTH = 80
HEAVY_RULE = "=" * RULE_WIDTH
LIGHT_RULE = "-" * RULE_WIDTH

# Lifecycle order used when listing per-state counts.
STATE_ORDER = ("created", "received", "queued", "started", "passed", "failed", "errored", "canceled")

_STATE_GLYPHS = {
    "passed":   "[PASS]",
    "failed":   "[FAIL]",
    "errored":  "[ERR!]",
    "canceled": "[CNCL]",
    "started":  "[RUN ]",
    "created":  "[WAIT]",
    "received": "[WAIT]",
    "queued":   "[WAIT]",
}
_UNKNOWN_GLYPH = "[ ?? ]"


def state_glyph(state: str | None) -> str:
    return _STATE_GLYPHS.get((state or "").lower(), _UNKNOWN_GLYPH)


def format_duration(seconds: float | int | None) -> str:
    """Render seconds as m:ss using integer division and modulo by 60."""
    if seconds is None:
        return "N/A"
    total = int(seconds)
    return f"{total // 60}:{total % 60:02d}"


def iso_date(timestamp: str | None) -> str:
    """Date portion of an ISO-8601 timestamp, or N/A."""
    if not timestamp:
        return "N/A"
    return timestamp.split("T", 1)[0]


def header(title: str) -> list[str]:
    return [title, HEAVY_RULE]


def section(title: str) -> list[str]:
    """Lines that open a report section (blank separator, title, rule)."""
    return ["", title, LIGHT_RULE]

"""
Display cleanup for raw Travis job logs.

Travis logs are written for a terminal: ANSI colour codes, carriage-return
progress redraws, and travis_fold / travis_time control markers that the web
UI uses to collapse sections.  None of that is useful in a context window.
"""

from __future__ import annotations

import re

MAX_LINES = 250

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[A-Za-z]")
_TRAVIS_MARKER_RE = re.compile(r"travis_(?:fold|time):[a-z_]+:[^\r\n]*?(?=\r|$)", re.MULTILINE)


def clean_log(text: str) -> str:
    """Strip ANSI codes and travis markers; keep only the last redraw of \\r lines."""
    cleaned = []
    for line in text.split("\n"):
        line = _ANSI_RE.sub("", line)
        line = _TRAVIS_MARKER_RE.sub("", line)
        if "\r" in line:
            parts = [p for p in line.split("\r") if p.strip()]
            line = parts[-1] if parts else ""
        if line.strip():
            cleaned.append(line.rstrip())
    return "\n".join(cleaned)


def truncate_tail(text: str, max_lines: int = MAX_LINES) -> str:
    """Return the last ``max_lines`` lines of text with a truncation notice."""
    lines = text.splitlines()
    if len(lines) <= max_lines:
        return text
    kept = lines[-max_lines:]
    notice = f"[Log truncated: showing last {max_lines} of {len(lines)} lines]\n"
    return notice + "\n".join(kept)

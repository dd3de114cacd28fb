"""Tests for utils.log_text — display cleanup of raw Travis logs."""

from __future__ import annotations

from utils.log_text import MAX_LINES, clean_log, truncate_tail


class TestCleanLog:
    def test_strips_ansi(self):
        assert clean_log("\x1b[32;1mThe command exited with 0.\x1b[0m") == "The command exited with 0."

    def test_strips_fold_and_time_markers(self):
        raw = (
            "travis_fold:start:install\r\x1b[0K$ npm ci\n"
            "added 10 packages\n"
            "travis_time:end:0a1b:start=1,finish=2,duration=1\r\x1b[0K"
            "travis_fold:end:install\r\x1b[0K\n"
        )
        assert clean_log(raw) == "$ npm ci\nadded 10 packages"

    def test_progress_redraw_keeps_last(self):
        assert clean_log("10%\r50%\r100% done") == "100% done"

    def test_blank_lines_dropped(self):
        assert clean_log("a\n\n   \nb") == "a\nb"


class TestTruncateTail:
    def test_short_text_unchanged(self):
        text = "\n".join(f"line {i}" for i in range(10))
        assert truncate_tail(text) == text

    def test_long_text(self):
        text = "\n".join(f"line {i}" for i in range(MAX_LINES + 50))
        result = truncate_tail(text)
        lines = result.splitlines()
        assert lines[0] == f"[Log truncated: showing last {MAX_LINES} of {MAX_LINES + 50} lines]"
        assert lines[-1] == f"line {MAX_LINES + 49}"
        assert len(lines) == MAX_LINES + 1

    def test_custom_limit(self):
        result = truncate_tail("a\nb\nc\nd", max_lines=2)
        assert result.endswith("c\nd")

"""Tests for utils.insights — rates, trend boundaries, durations, branch breakdown."""

from __future__ import annotations

import pytest

from utils.insights import (
    TREND_DECLINING,
    TREND_IMPROVING,
    TREND_STABLE,
    DurationStats,
    branch_breakdown,
    duration_stats,
    format_insights,
    pass_rate,
    recent_failures,
    recommendations,
    state_counts,
    trend_label,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _build(
    state: str,
    *,
    number: int = 1,
    duration: int | None = None,
    branch: str | None = "main",
    finished_at: str | None = "2024-03-05T10:05:12Z",
    message: str = "Update docs",
) -> dict:
    return {
        "id": 1000 + number,
        "number": str(number),
        "state": state,
        "duration": duration,
        "started_at": None,
        "finished_at": finished_at,
        "branch": branch,
        "event_type": "push",
        "commit": {"sha": "abc123", "message": message, "author": "dev", "committed_at": None},
        "job_ids": [],
    }


def _builds(*states: str, **kwargs) -> list[dict]:
    return [_build(s, number=100 - i, **kwargs) for i, s in enumerate(states)]


# ---------------------------------------------------------------------------
# pass_rate
# ---------------------------------------------------------------------------


class TestPassRate:
    def test_empty(self):
        assert pass_rate([]) == 0.0

    def test_only_canceled_and_running(self):
        assert pass_rate(_builds("canceled", "started", "queued")) == 0.0

    def test_canceled_excluded_from_denominator(self):
        builds = _builds("passed", "passed", "passed", "failed", "errored", "canceled")
        assert pass_rate(builds) == 60.0

    def test_all_passed(self):
        assert pass_rate(_builds("passed", "passed")) == 100.0

    @pytest.mark.parametrize("states", [
        ("failed",),
        ("passed", "failed", "errored", "canceled", "weird"),
        ("passed",) * 7 + ("errored",) * 3,
    ])
    def test_within_bounds(self, states):
        assert 0.0 <= pass_rate(_builds(*states)) <= 100.0

    def test_state_case_insensitive(self):
        assert pass_rate(_builds("PASSED", "Failed")) == 50.0


# ---------------------------------------------------------------------------
# trend_label
# ---------------------------------------------------------------------------


class TestTrendLabel:
    def test_exact_plus_five_is_stable(self):
        assert trend_label(90.0, 85.0) == TREND_STABLE

    def test_exact_minus_five_is_stable(self):
        assert trend_label(80.0, 85.0) == TREND_STABLE

    def test_improving(self):
        assert trend_label(90.5, 85.0) == TREND_IMPROVING

    def test_declining(self):
        assert trend_label(79.5, 85.0) == TREND_DECLINING

    def test_equal(self):
        assert trend_label(50.0, 50.0) == TREND_STABLE


# ---------------------------------------------------------------------------
# duration_stats
# ---------------------------------------------------------------------------


class TestDurationStats:
    def test_odd_median(self):
        builds = [_build("passed", duration=d) for d in (30, 10, 20)]
        stats = duration_stats(builds)
        assert stats.median == 20
        assert stats.average == 20
        assert stats.minimum == 10
        assert stats.maximum == 30
        assert stats.count == 3

    def test_even_median_not_interpolated(self):
        builds = [_build("passed", duration=d) for d in (10, 20, 30, 40)]
        assert duration_stats(builds).median == 30

    def test_missing_and_zero_durations_ignored(self):
        builds = [_build("passed", duration=d) for d in (None, 0, 60, 120)]
        stats = duration_stats(builds)
        assert stats.count == 2
        assert stats.average == 90

    def test_all_missing(self):
        assert duration_stats(_builds("passed", "failed")) is None


# ---------------------------------------------------------------------------
# branch_breakdown
# ---------------------------------------------------------------------------


class TestBranchBreakdown:
    def test_sorted_and_limited(self):
        builds = []
        for i, name in enumerate(["b1", "b2", "b3", "b4", "b5", "b6", "b7"]):
            builds += [_build("passed", branch=name) for _ in range(7 - i)]

        top, total = branch_breakdown(builds)
        assert total == 7
        assert [s.name for s in top] == ["b1", "b2", "b3", "b4", "b5"]
        assert [s.total for s in top] == [7, 6, 5, 4, 3]

    def test_missing_branch_is_unknown(self):
        builds = [_build("passed", branch=None), _build("failed", branch="main")]
        top, total = branch_breakdown(builds)
        assert total == 2
        assert {s.name for s in top} == {"unknown", "main"}

    def test_per_branch_rate(self):
        builds = [
            _build("passed", branch="main"),
            _build("failed", branch="main"),
            _build("passed", branch="dev"),
        ]
        top, _ = branch_breakdown(builds)
        rates = {s.name: s.pass_rate for s in top}
        assert rates == {"main": 50.0, "dev": 100.0}


# ---------------------------------------------------------------------------
# recent_failures / state_counts
# ---------------------------------------------------------------------------


class TestRecentFailures:
    def test_only_failed_and_errored_newest_first(self):
        builds = _builds("passed", "failed", "canceled", "errored", "failed")
        result = recent_failures(builds)
        assert [b["state"] for b in result] == ["failed", "errored", "failed"]

    def test_capped_at_five(self):
        assert len(recent_failures(_builds(*["failed"] * 8))) == 5


class TestStateCounts:
    def test_lifecycle_order_then_unknown(self):
        builds = _builds("mystery", "failed", "passed", "passed", "canceled")
        assert state_counts(builds) == [
            ("passed", 2), ("failed", 1), ("canceled", 1), ("mystery", 1),
        ]


# ---------------------------------------------------------------------------
# recommendations
# ---------------------------------------------------------------------------


class TestRecommendations:
    @pytest.mark.parametrize("rate,expected", [
        (95.0, "Excellent pass rate"),
        (90.0, "Excellent pass rate"),
        (80.0, "Good pass rate"),
        (60.0, "Moderate pass rate"),
        (40.0, "Low pass rate"),
    ])
    def test_thresholds(self, rate, expected):
        lines = recommendations(rate, rate, None, 1, 0)
        assert expected in lines[0]

    def test_recent_decline_more_than_ten_points(self):
        lines = recommendations(80.0, 69.0, None, 8, 2)
        assert any("Recent builds are failing more" in line for line in lines)

    def test_recent_decline_exactly_ten_points(self):
        lines = recommendations(80.0, 70.0, None, 8, 2)
        assert not any("Recent builds" in line for line in lines)

    def test_slow_builds_flag(self):
        stats = DurationStats(count=3, average=100.0, median=100, minimum=50, maximum=151)
        lines = recommendations(95.0, 95.0, stats, 10, 0)
        assert any("significantly slower" in line for line in lines)

    def test_slow_builds_boundary(self):
        stats = DurationStats(count=3, average=100.0, median=100, minimum=50, maximum=150)
        lines = recommendations(95.0, 95.0, stats, 10, 0)
        assert not any("significantly slower" in line for line in lines)

    def test_more_failures_than_passes(self):
        lines = recommendations(40.0, 40.0, None, 2, 3)
        assert any("More failures than passes" in line for line in lines)

    def test_errored_not_counted_as_failures_for_flag(self):
        lines = recommendations(40.0, 40.0, None, 2, 2)
        assert not any("More failures than passes" in line for line in lines)


# ---------------------------------------------------------------------------
# format_insights
# ---------------------------------------------------------------------------


class TestFormatInsights:
    def test_empty(self):
        result = format_insights("octo/widgets", [])
        assert "No builds found for octo/widgets" in result
        assert "BUILD STATISTICS" not in result

    def test_empty_with_branch(self):
        result = format_insights("octo/widgets", [], "dev")
        assert "on branch 'dev'" in result

    def test_section_order(self):
        builds = _builds("passed", "failed", branch=None)
        builds[1]["branch"] = "dev"
        result = format_insights("octo/widgets", builds)
        order = [
            "BUILD INSIGHTS: octo/widgets (all branches)",
            "BUILD STATISTICS",
            "RECENT TREND",
            "DURATION STATISTICS",
            "BRANCH BREAKDOWN",
            "RECENT FAILURES",
            "RECOMMENDATIONS",
        ]
        positions = [result.index(title) for title in order]
        assert positions == sorted(positions)
        assert "=" * 80 in result
        assert "-" * 80 in result

    def test_pass_rate_rendering(self):
        builds = _builds("passed", "passed", "passed", "failed", "errored", "canceled")
        result = format_insights("octo/widgets", builds)
        assert "60.0%  (3/5 completed builds)" in result
        assert "Total builds:" in result

    def test_recent_trend_uses_newest_ten(self):
        builds = _builds(*(["passed"] * 10 + ["failed"] * 10))
        result = format_insights("octo/widgets", builds)
        assert "RECENT TREND (last 10 builds)" in result
        assert "Improving" in result

    def test_short_history_trend_window(self):
        result = format_insights("octo/widgets", _builds("passed", "failed", "passed"))
        assert "RECENT TREND (last 3 builds)" in result
        assert "Stable" in result

    def test_durations_rendered_as_minutes_seconds(self):
        builds = [_build("passed", duration=d) for d in (65, 125, 600)]
        result = format_insights("octo/widgets", builds)
        assert "Median:" in result and "2:05" in result
        assert "1:05" in result
        assert "10:00" in result

    def test_no_duration_data(self):
        result = format_insights("octo/widgets", _builds("passed", "failed"))
        assert "No duration data available." in result

    def test_branch_filter_hides_breakdown(self):
        builds = _builds("passed", "failed")
        builds[1]["branch"] = "dev"
        result = format_insights("octo/widgets", builds, "main")
        assert "(branch: main)" in result
        assert "BRANCH BREAKDOWN" not in result

    def test_single_branch_hides_breakdown(self):
        result = format_insights("octo/widgets", _builds("passed", "failed"))
        assert "BRANCH BREAKDOWN" not in result

    def test_breakdown_drops_sixth_branch(self):
        builds = []
        for i, name in enumerate(["alpha", "bravo", "charlie", "delta", "echo", "foxtrot"]):
            builds += [_build("passed", branch=name) for _ in range(6 - i)]
        result = format_insights("octo/widgets", builds)
        assert "BRANCH BREAKDOWN (top 5 of 6 branches)" in result
        assert "echo" in result
        assert "foxtrot" not in result

    def test_failure_line(self):
        long_message = "x" * 70 + "\nsecond line"
        builds = [
            _build("failed", number=42, branch="dev", message=long_message),
            _build("errored", number=41, finished_at=None, message="Short"),
        ]
        result = format_insights("octo/widgets", builds)
        assert "#42" in result
        assert "2024-03-05" in result
        assert "x" * 60 + "..." in result
        assert "x" * 61 not in result
        assert "second line" not in result
        assert "N/A" in result

    def test_no_failures(self):
        result = format_insights("octo/widgets", _builds("passed", "passed"))
        assert "No failed or errored builds" in result
        assert "Excellent pass rate" in result

"""
Build-insight aggregation over a repository's recent Travis builds.

Input is a list of normalized build dicts (see travis_api.normalize_build),
newest first, already filtered by branch upstream when a filter was given.

Report sections, in order:
  1. Build statistics: total, per-state counts, pass rate.
  2. Recent trend: pass rate of the newest 10 builds vs the overall rate.
  3. Duration statistics over builds with a positive duration.
  4. Branch breakdown (only without a branch filter and with >1 branch).
  5. Up to 5 most recent failed/errored builds.
  6. Recommendations driven by fixed thresholds.

Pass rate is passed / (passed + failed + errored). Canceled and any other
state count toward totals but not toward the completed denominator.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass

from utils import commits
from utils.report import (
    STATE_ORDER,
    format_duration,
    header,
    iso_date,
    section,
    state_glyph,
)

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

RECENT_WINDOW = 10
TREND_THRESHOLD = 5.0
RECENT_DECLINE_THRESHOLD = 10.0
SLOW_BUILD_FACTOR = 1.5
TOP_BRANCHES = 5
RECENT_FAILURES = 5

RATE_EXCELLENT = 90.0
RATE_GOOD = 75.0
RATE_MODERATE = 50.0

SUCCESS_STATES = frozenset({"passed"})
FAILURE_STATES = frozenset({"failed", "errored"})

UNKNOWN_BRANCH = "unknown"

TREND_IMPROVING = "Improving"
TREND_DECLINING = "Declining"
TREND_STABLE = "Stable"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DurationStats:
    count: int
    average: float
    median: int
    minimum: int
    maximum: int


@dataclass(frozen=True)
class BranchStats:
    name: str
    total: int
    pass_rate: float


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def _state(build: dict) -> str:
    return (build.get("state") or "unknown").lower()


def pass_rate(builds: list[dict]) -> float:
    """Percentage of completed builds that passed; 0.0 when none completed."""
    passed = sum(1 for b in builds if _state(b) in SUCCESS_STATES)
    failed = sum(1 for b in builds if _state(b) in FAILURE_STATES)
    completed = passed + failed
    if completed == 0:
        return 0.0
    return passed * 100 / completed


def trend_label(recent_rate: float, overall_rate: float) -> str:
    diff = recent_rate - overall_rate
    if diff > TREND_THRESHOLD:
        return TREND_IMPROVING
    if diff < -TREND_THRESHOLD:
        return TREND_DECLINING
    return TREND_STABLE


def duration_stats(builds: list[dict]) -> DurationStats | None:
    """Mean/median/min/max over positive durations. Median is sorted[n // 2]."""
    durations = sorted(b["duration"] for b in builds if (b.get("duration") or 0) > 0)
    if not durations:
        return None
    return DurationStats(
        count=len(durations),
        average=sum(durations) / len(durations),
        median=durations[len(durations) // 2],
        minimum=durations[0],
        maximum=durations[-1],
    )


def branch_breakdown(builds: list[dict], limit: int = TOP_BRANCHES) -> tuple[list[BranchStats], int]:
    """Per-branch totals and pass rates, busiest first.

    Returns (top ``limit`` branches, number of distinct branches).
    """
    grouped: dict[str, list[dict]] = {}
    for b in builds:
        grouped.setdefault(b.get("branch") or UNKNOWN_BRANCH, []).append(b)

    stats = [
        BranchStats(name=name, total=len(items), pass_rate=pass_rate(items))
        for name, items in grouped.items()
    ]
    stats.sort(key=lambda s: s.total, reverse=True)
    return stats[:limit], len(grouped)


def recent_failures(builds: list[dict], limit: int = RECENT_FAILURES) -> list[dict]:
    return [b for b in builds if _state(b) in FAILURE_STATES][:limit]


def state_counts(builds: list[dict]) -> list[tuple[str, int]]:
    """Per-state counts: known states in lifecycle order, then the rest as seen."""
    counts = Counter(_state(b) for b in builds)
    ordered = [s for s in STATE_ORDER if s in counts]
    ordered += [s for s in counts if s not in STATE_ORDER]
    return [(s, counts[s]) for s in ordered]


def recommendations(
    overall_rate: float,
    recent_rate: float,
    durations: DurationStats | None,
    passed: int,
    failed: int,
) -> list[str]:
    lines: list[str] = []

    if overall_rate >= RATE_EXCELLENT:
        lines.append(f"[OK] Excellent pass rate ({overall_rate:.1f}%). The build pipeline is healthy.")
    elif overall_rate >= RATE_GOOD:
        lines.append(f"[i] Good pass rate ({overall_rate:.1f}%), but there is room for improvement.")
    elif overall_rate >= RATE_MODERATE:
        lines.append(
            f"[!] Moderate pass rate ({overall_rate:.1f}%). "
            "Investigate failure patterns across recent builds."
        )
    else:
        lines.append(
            f"[!!] Low pass rate ({overall_rate:.1f}%). "
            "Build stability needs urgent attention."
        )

    if recent_rate < overall_rate - RECENT_DECLINE_THRESHOLD:
        lines.append(
            f"[!] Recent builds are failing more often than usual "
            f"({recent_rate:.1f}% recent vs {overall_rate:.1f}% overall). "
            "Check the latest commits for regressions."
        )

    if durations is not None and durations.maximum > SLOW_BUILD_FACTOR * durations.average:
        lines.append(
            f"[!] Some builds are significantly slower than average "
            f"(slowest {format_duration(durations.maximum)} vs average "
            f"{format_duration(durations.average)}). "
            "Look for uncached dependencies or resource contention."
        )

    if failed > passed:
        lines.append(
            f"[!] More failures than passes ({failed} failed vs {passed} passed). "
            "Fix the main failure causes before adding new work."
        )

    return lines


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def format_insights(repo: str, builds: list[dict], branch: str | None = None) -> str:
    """Render the build-insight report for ``repo``."""
    scope = f"branch: {branch}" if branch else "all branches"

    if not builds:
        where = f" on branch '{branch}'" if branch else ""
        return f"No builds found for {repo}{where}. The repository may not be active on Travis CI."

    total = len(builds)
    counts = state_counts(builds)
    count_map = dict(counts)
    passed = count_map.get("passed", 0)
    failed = count_map.get("failed", 0)
    completed = passed + failed + count_map.get("errored", 0)

    overall = pass_rate(builds)
    recent = builds[:min(RECENT_WINDOW, total)]
    recent_rate = pass_rate(recent)
    durations = duration_stats(builds)

    lines = header(f"BUILD INSIGHTS: {repo} ({scope})")
    lines.append(f"Builds analyzed: {total}")

    lines += section("BUILD STATISTICS")
    lines.append(f"  {'Total builds:':<22} {total}")
    for state, count in counts:
        lines.append(f"  {state_glyph(state)} {state + ':':<15} {count}")
    lines.append(f"  {'Pass rate:':<22} {overall:.1f}%  ({passed}/{completed} completed builds)")

    lines += section(f"RECENT TREND (last {len(recent)} builds)")
    lines.append(f"  {'Recent pass rate:':<22} {recent_rate:.1f}%")
    lines.append(f"  {'Overall pass rate:':<22} {overall:.1f}%")
    lines.append(f"  {'Trend:':<22} {trend_label(recent_rate, overall)}")

    if durations is None:
        lines += section("DURATION STATISTICS")
        lines.append("  No duration data available.")
    else:
        lines += section(f"DURATION STATISTICS ({durations.count} builds with duration)")
        lines.append(f"  {'Average:':<22} {format_duration(durations.average)}")
        lines.append(f"  {'Median:':<22} {format_duration(durations.median)}")
        lines.append(f"  {'Fastest:':<22} {format_duration(durations.minimum)}")
        lines.append(f"  {'Slowest:':<22} {format_duration(durations.maximum)}")

    if not branch:
        top, n_branches = branch_breakdown(builds)
        if n_branches > 1:
            lines += section(f"BRANCH BREAKDOWN (top {len(top)} of {n_branches} branches)")
            lines.append(f"  {'Branch':<30} {'Builds':>7} {'Pass rate':>10}")
            for s in top:
                lines.append(f"  {s.name:<30} {s.total:>7} {s.pass_rate:>9.1f}%")

    lines += section("RECENT FAILURES")
    failures = recent_failures(builds)
    if not failures:
        lines.append("  No failed or errored builds in this window.")
    for b in failures:
        message = commits.first_line((b.get("commit") or {}).get("message"))
        lines.append(
            f"  {state_glyph(b.get('state'))} #{b.get('number', '?'):<8} "
            f"{b.get('branch') or UNKNOWN_BRANCH:<20} {iso_date(b.get('finished_at')):<10}  {message}"
        )

    lines += section("RECOMMENDATIONS")
    for rec in recommendations(overall, recent_rate, durations, passed, failed):
        lines.append(f"  {rec}")

    return "\n".join(lines)

"""
Log-based optimization analysis for the jobs of one Travis build.

Strategy for analyze_log():
  1. Run every detector in DETECTORS over one job's raw log.  Detectors are
     independent, so a single job can produce findings in several
     categories; each detector fires at most once per job.
  2. Findings across all jobs are flattened into one list, tallied per
     category, and grouped for the detailed section in first-seen order.
  3. Each category present gets its canned remediation block exactly once
     (REMEDIATION is static text, not computed).
  4. Jobs with a known positive duration are ranked; the slowest three are
     listed, with a warning when the slowest exceeds 5 minutes.

Logs that could not be fetched arrive as a literal error string.  They run
through the same detectors, match nothing, and are shown as unavailable in
the jobs section.
"""

from __future__ import annotations

import enum
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Callable

from utils.report import format_duration, header, section, state_glyph

SLOW_JOB_THRESHOLD = 300
SLOWEST_JOBS = 3
SETUP_LINE_THRESHOLD = 10


class Category(enum.Enum):
    DEPENDENCY_INSTALLATION = "Dependency Installation"
    CACHING = "Caching"
    BUILD_PROCESS = "Build Process"
    TESTING = "Testing"
    DOCKER = "Docker"
    SETUP_OVERHEAD = "Setup Overhead"


_HIGH_IMPACT = frozenset({
    Category.DEPENDENCY_INSTALLATION,
    Category.CACHING,
    Category.SETUP_OVERHEAD,
})

_CATEGORY_GLYPH = {c: "[!]" if c in _HIGH_IMPACT else "[i]" for c in Category}

REMEDIATION: dict[Category, tuple[str, ...]] = {
    Category.DEPENDENCY_INSTALLATION: (
        "Cache package manager directories (cache: npm, cache: pip, cache: bundler).",
        "Prefer lockfile installs (npm ci, pip install -r with pinned versions).",
        "Drop dependencies that are only needed locally from the CI install step.",
    ),
    Category.CACHING: (
        "A cache was missed without any later hit; check that the cache key and paths are stable.",
        "Add a 'cache:' section to .travis.yml for dependency and build output directories.",
        "Avoid caching directories that change on every build, they invalidate the archive.",
    ),
    Category.BUILD_PROCESS: (
        "Enable incremental compilation and cache build outputs between runs.",
        "Build once in an early stage and share artifacts with later stages.",
        "Skip production-grade optimizations (minification, LTO) for test-only builds.",
    ),
    Category.TESTING: (
        "Split the test suite across matrix jobs or build stages to run in parallel.",
        "Run fast unit tests before slow integration tests and fail fast.",
        "Profile the slowest tests and mark long-running ones for a separate stage.",
    ),
    Category.DOCKER: (
        "Pull pre-built images instead of building them in every job.",
        "Order Dockerfile instructions so rarely-changing layers come first.",
        "Use smaller base images and multi-stage builds to reduce pull and build time.",
    ),
    Category.SETUP_OVERHEAD: (
        "Move system packages into a custom image or use addons: apt with caching.",
        "Remove setup steps that are not needed for every job in the matrix.",
        "Use a pre-provisioned language version instead of installing it at runtime.",
    ),
}


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

DEPENDENCY_COMMANDS = ("npm install", "npm ci", "yarn install", "pip install", "bundle install")

_CACHE_MISS_RE = re.compile(
    r"cache miss|cache not found|no cache (?:found|available)|"
    r"could not download cache|unable to (?:restore|fetch) cache|"
    r"downloading (?:archive|cache) .*(?:since|because) .*cache",
    re.IGNORECASE,
)

_CACHE_HIT_RE = re.compile(
    r"cache hit|restored (?:from )?cache|cache restored|using cached|found cache",
    re.IGNORECASE,
)

# A command position: start of line, optionally after the shell prompt ("$ ")
# or an npm script echo ("> "), optionally via npx.
_CMD = r"^\s*(?:[$>]\s*)?(?:npx\s+)?"
_END = r"(?=\s|$)"

# Checked in list order; the first pattern that matches any line wins.
_BUILD_TOOL_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("webpack", re.compile(_CMD + r"webpack" + _END, re.IGNORECASE)),
    ("TypeScript compiler", re.compile(_CMD + r"tsc" + _END, re.IGNORECASE)),
    ("Babel", re.compile(_CMD + r"babel" + _END, re.IGNORECASE)),
    ("npm/yarn build script", re.compile(_CMD + r"(?:npm run|yarn) build" + _END, re.IGNORECASE)),
    ("Maven", re.compile(_CMD + r"(?:\./)?mvnw?\s.*\b(?:compile|package|install)\b", re.IGNORECASE)),
    ("Gradle", re.compile(_CMD + r"(?:\./)?gradlew?\s.*\b(?:build|assemble)\b", re.IGNORECASE)),
    ("Cargo", re.compile(_CMD + r"cargo build" + _END, re.IGNORECASE)),
    ("Go compiler", re.compile(_CMD + r"go build" + _END, re.IGNORECASE)),
    ("C/C++ compiler", re.compile(_CMD + r"(?:gcc|g\+\+|clang(?:\+\+)?)" + _END, re.IGNORECASE)),
    ("make", re.compile(_CMD + r"make" + _END, re.IGNORECASE)),
]

_TEST_SUMMARY_PATTERNS: list[re.Pattern] = [
    re.compile(r"\bRan \d+ tests? in \d+(?:\.\d+)?s", re.IGNORECASE),                 # unittest
    re.compile(r"\b\d+ passed(?:, \d+ \w+)* in \d+(?:\.\d+)?s", re.IGNORECASE),       # pytest
    re.compile(r"\b\d+ passing \(\d+(?:\.\d+)?m?s\)", re.IGNORECASE),                 # mocha
    re.compile(r"\bTests:\s+(?:\d+ \w+, )*\d+ total", re.IGNORECASE),                  # jest
]

DOCKER_COMMANDS = ("docker pull", "docker build")
SETUP_MARKERS = ("Setting up", "Installing", "Downloading")


# ---------------------------------------------------------------------------
# Detectors: (text, lines) -> detail fragment or None
# ---------------------------------------------------------------------------

Detector = Callable[[str, list[str]], "str | None"]


def _detect_dependencies(text: str, lines: list[str]) -> str | None:
    for line in lines:
        for cmd in DEPENDENCY_COMMANDS:
            if cmd in line:
                return f"dependencies installed with '{cmd}'"
    return None


def _detect_cache_miss(text: str, lines: list[str]) -> str | None:
    miss = _CACHE_MISS_RE.search(text)
    if miss and not _CACHE_HIT_RE.search(text):
        return f"cache miss with no cache hit ('{miss.group(0).strip()}')"
    return None


def _detect_build_tool(text: str, lines: list[str]) -> str | None:
    for name, pattern in _BUILD_TOOL_PATTERNS:
        for line in lines:
            if pattern.search(line):
                return f"build step detected ({name})"
    return None


def _detect_test_summary(text: str, lines: list[str]) -> str | None:
    for pattern in _TEST_SUMMARY_PATTERNS:
        m = pattern.search(text)
        if m:
            return f"test run summary: '{m.group(0).strip()[:80]}'"
    return None


def _detect_docker(text: str, lines: list[str]) -> str | None:
    found = [cmd for cmd in DOCKER_COMMANDS if cmd in text]
    if found:
        return f"container operations ({', '.join(found)})"
    return None


def _detect_setup_overhead(text: str, lines: list[str]) -> str | None:
    count = sum(1 for line in lines if any(marker in line for marker in SETUP_MARKERS))
    if count > SETUP_LINE_THRESHOLD:
        return f"{count} setup/install/download lines"
    return None


DETECTORS: list[tuple[Category, Detector]] = [
    (Category.DEPENDENCY_INSTALLATION, _detect_dependencies),
    (Category.CACHING, _detect_cache_miss),
    (Category.BUILD_PROCESS, _detect_build_tool),
    (Category.TESTING, _detect_test_summary),
    (Category.DOCKER, _detect_docker),
    (Category.SETUP_OVERHEAD, _detect_setup_overhead),
]


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Finding:
    category: Category
    detail: str


@dataclass
class JobLog:
    """One job's log and timing, as collected for analysis."""
    job_id: int | None
    number: str
    log: str
    state: str = "unknown"
    duration: int | None = None
    config: dict = field(default_factory=dict)
    log_error: str | None = None


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


def analyze_log(job_number: str, text: str) -> list[Finding]:
    """Run every detector over one job's log."""
    lines = text.splitlines()
    findings = []
    for category, detect in DETECTORS:
        detail = detect(text, lines)
        if detail:
            findings.append(Finding(category, f"Job {job_number}: {detail}"))
    return findings


def analyze_jobs(job_logs: list[JobLog]) -> list[Finding]:
    findings: list[Finding] = []
    for job in job_logs:
        findings.extend(analyze_log(job.number, job.log))
    return findings


def group_findings(findings: list[Finding]) -> dict[Category, list[str]]:
    """Details grouped by category, categories in first-seen order."""
    grouped: dict[Category, list[str]] = {}
    for f in findings:
        grouped.setdefault(f.category, []).append(f.detail)
    return grouped


def slowest_jobs(job_logs: list[JobLog], limit: int = SLOWEST_JOBS) -> list[JobLog]:
    timed = [j for j in job_logs if (j.duration or 0) > 0]
    timed.sort(key=lambda j: j.duration, reverse=True)
    return timed[:limit]


def _job_runtime(config: dict) -> str:
    """'python 3.11' style label from a job's matrix config."""
    language = config.get("language")
    if not language:
        return ""
    version = config.get(language)
    if isinstance(version, list):
        version = version[0] if version else None
    return f"{language} {version}" if version else str(language)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------


def format_recommendations(build: dict, job_logs: list[JobLog], repo: str | None = None) -> str:
    """Render the optimization report for one build."""
    number = build.get("number", "?")
    if not job_logs:
        return f"No jobs found for build #{number}."

    title = f"OPTIMIZATION RECOMMENDATIONS: Build #{number}"
    if repo:
        title += f" ({repo})"
    lines = header(title)
    lines.append(f"Jobs analyzed: {len(job_logs)}")

    lines += section("JOBS")
    for job in job_logs:
        lines.append(
            f"  {state_glyph(job.state)} {job.number:<10} "
            f"{_job_runtime(job.config):<20} {format_duration(job.duration)}"
        )
        if job.log_error is not None:
            lines.append(f"         Log unavailable: {job.log}")

    findings = analyze_jobs(job_logs)
    if not findings:
        lines += section("FINDINGS SUMMARY")
        lines.append("  No optimization opportunities detected in the job logs.")
    else:
        grouped = group_findings(findings)
        tally = Counter(f.category for f in findings)

        lines += section("FINDINGS SUMMARY")
        for category in grouped:
            lines.append(f"  {category.value + ':':<26} {tally[category]}")

        lines += section("DETAILED ANALYSIS")
        for category, details in grouped.items():
            lines.append(f"{_CATEGORY_GLYPH[category]} {category.value}")
            for detail in details:
                lines.append(f"  - {detail}")

        lines += section("RECOMMENDATIONS")
        for category in grouped:
            lines.append(f"{category.value}:")
            for bullet in REMEDIATION[category]:
                lines.append(f"  - {bullet}")

    lines += section("SLOWEST JOBS")
    slowest = slowest_jobs(job_logs)
    if not slowest:
        lines.append("  No job duration data available.")
    for rank, job in enumerate(slowest, start=1):
        lines.append(f"  {rank}. Job {job.number:<10} {format_duration(job.duration)}")
    if slowest and slowest[0].duration > SLOW_JOB_THRESHOLD:
        lines.append(
            f"  [!] Slowest job ({slowest[0].number}) takes {format_duration(slowest[0].duration)}, "
            "over 5 minutes. Consider splitting it into stages or parallel matrix jobs."
        )

    return "\n".join(lines)

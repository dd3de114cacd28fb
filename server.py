"""
Travis CI Investigator MCP Server

A Model Context Protocol server that exposes the Travis CI REST API (v3) as
tools and resources, and condenses build history and job logs into short
plain-text reports for the AI's limited context window.

Transport: stdio by default (MCP_TRANSPORT=stdio, e.g. for Claude Desktop/Cursor).
           Set MCP_TRANSPORT=http to serve Streamable HTTP on MCP_HOST:MCP_PORT.
Logs:      All application logs go to stderr to avoid corrupting the JSON-RPC stream.
"""

import json
import logging
import os
import sys

import requests
from dotenv import load_dotenv
from fastmcp import FastMCP

from utils import commits, fanout, insights, log_text, optimization, travis_api
from utils.report import format_duration, iso_date, state_glyph

load_dotenv()

# Route all library and application logs to stderr, never stdout.
logging.basicConfig(
    stream=sys.stderr,
    level=logging.WARNING,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("travis-mcp")

_RESOURCE_BUILD_LIMIT = 20

mcp = FastMCP(
    "Travis CI Investigator",
    instructions=(
        "You are a Travis CI assistant. "
        "Use travis_getBuildInsights for pass rates, trends, durations and branch health of a repository. "
        "Use travis_getOptimizationRecommendations with a build ID to find slow steps in its job logs. "
        "Use travis_listBuilds to discover build IDs, travis_getBuild for one build and its jobs, "
        "and travis_getJobLog to read a job's log. "
        "travis_triggerBuild, travis_restartBuild, travis_cancelBuild, travis_restartJob and "
        "travis_cancelJob change state on Travis CI; only call them when the user asks to."
    ),
)


def _handle_error(exc: Exception, context: str) -> str:
    """Convert common exceptions into readable strings for the AI."""
    if isinstance(exc, requests.HTTPError):
        status = exc.response.status_code
        if status in (401, 403):
            return f"[{context}] Authentication failed ({status}). Check TRAVIS_API_TOKEN."
        if status == 404:
            return f"[{context}] Not found (404). Verify the repository slug, build ID or job ID."
        try:
            body = exc.response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and body.get("error_message"):
            return f"[{context}] Travis API error {status}: {body['error_message']}"
        return f"[{context}] Travis API error {status}: {exc.response.text[:300]}"
    if isinstance(exc, (ConnectionError, TimeoutError)):
        return f"[{context}] {exc}"
    return f"[{context}] Unexpected error: {exc}"


# ---------------------------------------------------------------------------
# Discovery Tools
# ---------------------------------------------------------------------------


@mcp.tool
def travis_listBuilds(repo: str, branch: str = "", limit: int = 10) -> str:
    """List recent builds of a repository, newest first. Use to discover build IDs.

    Args:
        repo: Repository slug like owner/name.
        branch: Optional branch name filter.
        limit: Number of builds (default 10, max 100).
    """
    try:
        builds = travis_api.get_builds(repo, branch or None, travis_api.clamp_limit(limit, 10))
    except Exception as exc:
        return _handle_error(exc, "travis_listBuilds")

    if not builds:
        where = f" on branch '{branch}'" if branch else ""
        return f"No builds found for {repo}{where}."

    lines = [f"Recent builds for {repo} (last {len(builds)}):\n"]
    lines.append(f"  {'Build ID':<12} {'#':<8} {'State':<15} {'Duration':>9}  {'Branch':<20} {'Finished'}")
    lines.append(f"  {'-'*12} {'-'*8} {'-'*15} {'-'*9}  {'-'*20} {'-'*10}")
    for b in builds:
        state = f"{state_glyph(b['state'])} {b['state']}"
        lines.append(
            f"  {b['id']!s:<12} {b['number']:<8} {state:<15} {format_duration(b['duration']):>9}  "
            f"{b['branch'] or insights.UNKNOWN_BRANCH:<20} {iso_date(b['finished_at'])}"
        )
    lines.append("\nUse a Build ID with travis_getBuild or travis_getOptimizationRecommendations.")
    return "\n".join(lines)


@mcp.tool
def travis_getBuild(build_id: int) -> str:
    """Build overview: state, branch, duration, commit, and each job.

    Args:
        build_id: Travis build ID (not the build number).
    """
    try:
        build = travis_api.get_build(build_id)
        jobs = travis_api.get_build_jobs(build_id)
    except Exception as exc:
        return _handle_error(exc, "travis_getBuild")

    commit = build.get("commit") or {}
    lines = [
        f"Build:      #{build['number']} (ID {build['id']})",
        f"State:      {state_glyph(build['state'])} {build['state']}",
        f"Branch:     {build['branch'] or insights.UNKNOWN_BRANCH}",
        f"Event:      {build.get('event_type') or 'unknown'}",
        f"Started:    {build['started_at'] or 'N/A'}",
        f"Finished:   {build['finished_at'] or 'N/A'}",
        f"Duration:   {format_duration(build['duration'])}",
    ]
    if commit:
        lines.append(f"Commit:     [{commit['sha']}] {commit['author']}")
        lines.append(f"            {commits.first_line(commit['message'])}")

    if not jobs:
        lines.append("\nNo jobs recorded for this build.")
        return "\n".join(lines)

    lines.append(f"\nJobs ({len(jobs)}):")
    for j in jobs:
        allow = "  (allowed to fail)" if j["allow_failure"] else ""
        lines.append(
            f"  {state_glyph(j['state'])} {j['number']:<10} ID {j['id']!s:<12} "
            f"{format_duration(j['duration']):>8}{allow}"
        )
    lines.append("\nUse a job ID with travis_getJobLog to read its log.")
    return "\n".join(lines)


@mcp.tool
def travis_getJobLog(job_id: int, tail: int = log_text.MAX_LINES) -> str:
    """Show the end of a job's log with terminal control codes removed.

    Args:
        job_id: Travis job ID.
        tail: Number of trailing lines to return (default 250).
    """
    try:
        raw = travis_api.get_job_log(job_id)
    except Exception as exc:
        return _handle_error(exc, "travis_getJobLog")

    cleaned = log_text.clean_log(raw)
    if not cleaned.strip():
        return f"Log for job {job_id} is empty (the job may not have started yet)."
    return log_text.truncate_tail(cleaned, max(1, tail))


# ---------------------------------------------------------------------------
# Analysis Tools
# ---------------------------------------------------------------------------


@mcp.tool
def travis_getBuildInsights(repo: str, branch: str = "", limit: int = travis_api.DEFAULT_BUILD_LIMIT) -> str:
    """Pass rate, recent trend, duration statistics, branch health and recent
    failures for a repository's builds, with recommendations.

    Args:
        repo: Repository slug like owner/name.
        branch: Optional branch to restrict the analysis to.
        limit: Number of recent builds to analyze (default 50, max 100).
    """
    try:
        builds = travis_api.get_builds(repo, branch or None, travis_api.clamp_limit(limit))
    except Exception as exc:
        return _handle_error(exc, "travis_getBuildInsights")

    return insights.format_insights(repo, builds, branch or None)


@mcp.tool
def travis_getOptimizationRecommendations(build_id: int) -> str:
    """Scan every job log of a build for slow patterns (dependency installs,
    cache misses, compilation, tests, Docker, setup) and suggest fixes.
    Also ranks the slowest jobs.

    Args:
        build_id: Travis build ID (not the build number).
    """
    try:
        build = travis_api.get_build(build_id)
        jobs = travis_api.get_build_jobs(build_id)
    except Exception as exc:
        return _handle_error(exc, "travis_getOptimizationRecommendations")

    job_logs = fanout.collect_job_logs(jobs, travis_api.get_job_log, travis_api.get_job)
    return optimization.format_recommendations(build, job_logs, build.get("repo"))


# ---------------------------------------------------------------------------
# Action Tools
# ---------------------------------------------------------------------------


def _format_action(response: dict, resource: str, resource_id: int, action: str) -> str:
    """Summarize a Travis 'pending' action response."""
    target = response.get(resource) or {}
    number = target.get("number")
    kind = resource.capitalize()
    label = f"{kind} #{number} (ID {resource_id})" if number else f"{kind} {resource_id}"
    lines = [f"{label}: {action} requested."]
    if target.get("state"):
        lines.append(f"Current state: {target['state']}")
    lines.append(f"Use travis_get{'Build' if resource == 'build' else 'JobLog'} to follow progress.")
    return "\n".join(lines)


@mcp.tool
def travis_triggerBuild(repo: str, branch: str, message: str = "Triggered via MCP",
                        config: dict | None = None) -> str:
    """Trigger a build for a repo and branch, with optional config overrides.

    Args:
        repo: Repository slug like owner/name.
        branch: Git branch to build.
        message: Request message shown on Travis CI.
        config: Optional .travis.yml overrides (object form).
    """
    try:
        response = travis_api.trigger_build(repo, branch, message, config)
    except Exception as exc:
        return _handle_error(exc, "travis_triggerBuild")

    request = response.get("request") or {}
    lines = [f"Build request accepted for {repo} on branch '{branch}'."]
    if request.get("id"):
        lines.append(f"Request ID: {request['id']}")
    if response.get("remaining_requests") is not None:
        lines.append(f"Remaining requests: {response['remaining_requests']}")
    lines.append("The build appears in travis_listBuilds once Travis has processed the request.")
    return "\n".join(lines)


@mcp.tool
def travis_restartBuild(build_id: int) -> str:
    """Restart a build by build ID.

    Args:
        build_id: Travis build ID.
    """
    try:
        response = travis_api.restart_build(build_id)
    except Exception as exc:
        return _handle_error(exc, "travis_restartBuild")
    return _format_action(response, "build", build_id, "restart")


@mcp.tool
def travis_cancelBuild(build_id: int) -> str:
    """Cancel a build by build ID.

    Args:
        build_id: Travis build ID.
    """
    try:
        response = travis_api.cancel_build(build_id)
    except Exception as exc:
        return _handle_error(exc, "travis_cancelBuild")
    return _format_action(response, "build", build_id, "cancel")


@mcp.tool
def travis_restartJob(job_id: int) -> str:
    """Restart a single job by job ID.

    Args:
        job_id: Travis job ID.
    """
    try:
        response = travis_api.restart_job(job_id)
    except Exception as exc:
        return _handle_error(exc, "travis_restartJob")
    return _format_action(response, "job", job_id, "restart")


@mcp.tool
def travis_cancelJob(job_id: int) -> str:
    """Cancel a single job by job ID.

    Args:
        job_id: Travis job ID.
    """
    try:
        response = travis_api.cancel_job(job_id)
    except Exception as exc:
        return _handle_error(exc, "travis_cancelJob")
    return _format_action(response, "job", job_id, "cancel")


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------


@mcp.resource(
    "travis://repos/{owner}/{name}/builds{?limit}",
    name="Recent builds",
    description="List recent builds for a repo slug like owner/name (limit defaults to 20, max 100)",
    mime_type="application/json",
)
def recent_builds(owner: str, name: str, limit: int = _RESOURCE_BUILD_LIMIT) -> str:
    data = travis_api.get_builds_raw(f"{owner}/{name}", limit=limit)
    return json.dumps(data, indent=2)


@mcp.resource(
    "travis://repos/{owner}/{name}/env-vars",
    name="Repo environment variables",
    description="List environment variables for a repo",
    mime_type="application/json",
)
def env_vars(owner: str, name: str) -> str:
    return json.dumps(travis_api.get_env_vars(f"{owner}/{name}"), indent=2)


@mcp.resource(
    "travis://jobs/{job_id}/log",
    name="Build log by Job ID",
    description="Fetch raw log for a job",
    mime_type="text/plain",
)
def job_log(job_id: int) -> str:
    return travis_api.get_job_log(job_id)


def main() -> None:
    transport = os.getenv("MCP_TRANSPORT", "stdio")
    host = os.getenv("MCP_HOST", "0.0.0.0")
    port = int(os.getenv("MCP_PORT", "8000"))

    if transport == "stdio":
        print("Travis CI MCP server is ready (stdio).", file=sys.stderr)
        mcp.run(transport="stdio", show_banner=False)
    else:
        print(
            f"Travis CI MCP server starting\n"
            f"  Local:    http://127.0.0.1:{port}/mcp",
            file=sys.stderr,
        )
        mcp.run(transport=transport, host=host, port=port, show_banner=False)


if __name__ == "__main__":
    main()

"""
Clean wrappers for Travis CI REST API (v3) calls.

All functions raise meaningful exceptions rather than returning error strings,
so callers (MCP tools) can decide how to surface the failure.

Raw v3 payloads carry a lot of hypermedia noise (@type, @href, @permissions).
Builds and jobs are normalized into small plain dicts before they leave this
module; see normalize_build() and normalize_job().
"""

import logging
import os
from datetime import datetime
from urllib.parse import quote

import requests
from dotenv import load_dotenv

from utils import commits

load_dotenv()

logger = logging.getLogger(__name__)

_TRAVIS_URL = os.environ.get("TRAVIS_API_URL", "https://api.travis-ci.com").rstrip("/")
_TRAVIS_TOKEN = os.environ.get("TRAVIS_API_TOKEN", "")
_USER_AGENT = os.environ.get("TRAVIS_USER_AGENT", "mcp-travis/0.1")

if not _TRAVIS_TOKEN:
    raise EnvironmentError(
        "Missing required environment variable: TRAVIS_API_TOKEN. "
        "Copy .env.example to .env and fill in your Travis CI API token."
    )

_HEADERS = {
    "Travis-API-Version": "3",
    "Authorization": f"token {_TRAVIS_TOKEN}",
    "User-Agent": _USER_AGENT,
}
_TIMEOUT = 30

_VERIFY_SSL = os.environ.get("TRAVIS_VERIFY_SSL", "true").lower() not in ("false", "0", "no")

if not _VERIFY_SSL:
    import urllib3
    urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

_MAX_LOG_BYTES = 10 * 1024 * 1024   # 10 MB

DEFAULT_BUILD_LIMIT = 50
MAX_BUILD_LIMIT = 100


def _request(method: str, path: str, **kwargs) -> requests.Response:
    """Single HTTP round-trip to Travis. Transport errors become builtin exceptions."""
    url = path if path.startswith("http") else f"{_TRAVIS_URL}{path}"
    try:
        response = requests.request(
            method, url, headers=_HEADERS, timeout=_TIMEOUT, verify=_VERIFY_SSL, **kwargs,
        )
        response.raise_for_status()
        return response
    except requests.HTTPError as exc:
        logger.debug("Travis HTTP %s for %s %s", exc.response.status_code, method, url)
        raise
    except requests.ConnectionError:
        raise ConnectionError(
            f"Cannot reach Travis CI at {_TRAVIS_URL}. "
            "Verify your network connection and TRAVIS_API_URL."
        )
    except requests.Timeout:
        raise TimeoutError(
            f"Travis CI did not respond within {_TIMEOUT} seconds ({url})."
        )


def _get(path: str, **kwargs) -> requests.Response:
    return _request("GET", path, **kwargs)


def _post(path: str, **kwargs) -> requests.Response:
    return _request("POST", path, **kwargs)


def _repo_path(repo: str) -> str:
    """Convert an owner/name slug into a Travis API path segment.

    The slash must be encoded, Travis treats the slug as a single segment.
    'travis-ci/travis-web' -> '/repo/travis-ci%2Ftravis-web'
    '12345'                -> '/repo/12345'
    """
    return "/repo/" + quote(repo.strip(), safe="")


def clamp_limit(limit: int, default: int = DEFAULT_BUILD_LIMIT) -> int:
    """Clamp a requested build count into 1..MAX_BUILD_LIMIT (0/None -> default)."""
    if not limit:
        return default
    return max(1, min(int(limit), MAX_BUILD_LIMIT))


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _elapsed_seconds(started_at: str | None, finished_at: str | None) -> int | None:
    start = _parse_timestamp(started_at)
    end = _parse_timestamp(finished_at)
    if start is None or end is None:
        return None
    seconds = int((end - start).total_seconds())
    return seconds if seconds > 0 else None


def normalize_build(data: dict) -> dict:
    """Prune a v3 build representation to the fields the tools need."""
    branch = data.get("branch")
    repository = data.get("repository")
    return {
        "id": data.get("id"),
        "number": str(data.get("number") or "?"),
        "state": data.get("state") or "unknown",
        "duration": data.get("duration"),
        "started_at": data.get("started_at"),
        "finished_at": data.get("finished_at"),
        "branch": branch.get("name") if isinstance(branch, dict) else None,
        "event_type": data.get("event_type"),
        "repo": repository.get("slug") if isinstance(repository, dict) else None,
        "commit": commits.extract_commit(data),
        "job_ids": [j.get("id") for j in (data.get("jobs") or []) if isinstance(j, dict)],
    }


def normalize_job(data: dict) -> dict:
    """Prune a v3 job representation.

    v3 does not expose a job duration directly on every representation;
    when it is absent the elapsed time between started_at and finished_at
    is used instead.
    """
    duration = data.get("duration")
    if not duration:
        duration = _elapsed_seconds(data.get("started_at"), data.get("finished_at"))
    config = data.get("config")
    return {
        "id": data.get("id"),
        "number": str(data.get("number") or data.get("id") or "?"),
        "state": data.get("state") or "unknown",
        "allow_failure": bool(data.get("allow_failure")),
        "config": config if isinstance(config, dict) else {},
        "duration": duration,
        "started_at": data.get("started_at"),
        "finished_at": data.get("finished_at"),
    }


# ---------------------------------------------------------------------------
# Builds
# ---------------------------------------------------------------------------


def get_builds_raw(repo: str, branch: str | None = None, limit: int = 20) -> dict:
    """Fetch the raw builds payload for a repository (used by resources)."""
    params = {"limit": clamp_limit(limit, 20), "sort_by": "id:desc"}
    if branch:
        params["branch.name"] = branch
    return _get(f"{_repo_path(repo)}/builds", params=params).json()


def get_builds(repo: str, branch: str | None = None,
               limit: int = DEFAULT_BUILD_LIMIT) -> list[dict]:
    """Fetch the most recent builds for a repository, newest first.

    Count is clamped to MAX_BUILD_LIMIT (100).
    """
    data = get_builds_raw(repo, branch, clamp_limit(limit))
    return [normalize_build(b) for b in data.get("builds") or []]


def get_build(build_id: int) -> dict:
    """Fetch a single build by its numeric ID (not its display number)."""
    return normalize_build(_get(f"/build/{build_id}").json())


def get_build_jobs(build_id: int) -> list[dict]:
    """Fetch every job of a build, including each job's matrix config."""
    data = _get(f"/build/{build_id}/jobs", params={"include": "job.config"}).json()
    return [normalize_job(j) for j in data.get("jobs") or []]


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------


def get_job(job_id: int) -> dict:
    """Fetch a single job's details (state, config, timing)."""
    return normalize_job(_get(f"/job/{job_id}", params={"include": "job.config"}).json())


def get_job_log(job_id: int) -> str:
    """Fetch the raw text log for a job, streaming and capping at 10 MB."""
    response = _get(f"/job/{job_id}/log.txt", stream=True)
    response.encoding = "utf-8"
    chunks: list[str] = []
    total = 0
    for chunk in response.iter_content(chunk_size=8192, decode_unicode=True):
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")
        total += len(chunk)
        chunks.append(chunk)
        if total >= _MAX_LOG_BYTES:
            chunks.append("\n[LOG TRUNCATED: exceeded 10 MB download limit]")
            break
    response.close()
    return "".join(chunks)


# ---------------------------------------------------------------------------
# Repository settings
# ---------------------------------------------------------------------------


def get_env_vars(repo: str) -> dict:
    """Fetch the raw env_vars payload. Private values come back as null."""
    return _get(f"{_repo_path(repo)}/env_vars").json()


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def trigger_build(repo: str, branch: str, message: str = "Triggered via MCP",
                  config: dict | None = None) -> dict:
    """Create a build request for a branch, with optional .travis.yml overrides."""
    request: dict = {"message": message, "branch": branch}
    if config:
        request["config"] = config
    return _post(f"{_repo_path(repo)}/requests", json={"request": request}).json()


def restart_build(build_id: int) -> dict:
    return _post(f"/build/{build_id}/restart").json()


def cancel_build(build_id: int) -> dict:
    return _post(f"/build/{build_id}/cancel").json()


def restart_job(job_id: int) -> dict:
    return _post(f"/job/{job_id}/restart").json()


def cancel_job(job_id: int) -> dict:
    return _post(f"/job/{job_id}/cancel").json()

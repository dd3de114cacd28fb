"""
Normalize Travis CI commit metadata.

Key API differences between representations:
  - Build (standard):  "commit" is an object with sha, message, committed_at
                       and an "author" object ({"name", "avatar_url"}).
  - Build (minimal):   "commit" only carries "@type"/"@href"/"id", no sha.
  - Older payloads:    author may be a plain string, or only "author_name"
                       / "committer_name" keys are present.

Report lines only ever show the first line of a commit message, so the
helper for that lives here as well.
"""

from __future__ import annotations

MESSAGE_WIDTH = 60


def _commit_sha(commit: dict) -> str:
    """Extract an abbreviated commit identifier."""
    for field in ("sha", "id"):
        val = commit.get(field)
        if val:
            return str(val)[:12]
    return "unknown"


def _author_name(commit: dict) -> str:
    author = commit.get("author")
    if isinstance(author, dict):
        return author.get("name") or author.get("login") or "unknown"
    if isinstance(author, str) and author:
        return author
    return commit.get("author_name") or commit.get("committer_name") or "unknown"


def extract_commit(build_data: dict) -> dict | None:
    """
    Return the normalized commit of a build, or None if the build has none.

    The returned dict has:
      - sha:           abbreviated hash
      - message:       full commit message (first 500 chars)
      - author:        display name of the author
      - committed_at:  ISO-8601 timestamp or None
    """
    commit = build_data.get("commit")
    if not isinstance(commit, dict) or not (commit.get("sha") or commit.get("message")):
        return None
    return {
        "sha": _commit_sha(commit),
        "message": (commit.get("message") or "")[:500].strip(),
        "author": _author_name(commit),
        "committed_at": commit.get("committed_at"),
    }


def first_line(message: str | None, width: int = MESSAGE_WIDTH) -> str:
    """First line of a commit message, cut to ``width`` chars with '...' appended."""
    text = (message or "").strip()
    if not text:
        return ""
    line = text.splitlines()[0]
    if len(line) > width:
        return line[:width] + "..."
    return line

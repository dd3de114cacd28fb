"""
Concurrent per-job fetches where one failure never aborts the batch.

Each task's result is wrapped in an Outcome (value or error text) inside the
worker thread, so exceptions never cross the join.  Callers fold over the
tagged results once every task has finished.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Any, Callable, Hashable

from utils.optimization import JobLog

logger = logging.getLogger(__name__)

_MAX_WORKERS = 8

LOG_ERROR_PREFIX = "Error fetching log"


@dataclass(frozen=True)
class Outcome:
    value: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _call(fn: Callable[[], Any]) -> Outcome:
    try:
        return Outcome(value=fn())
    except Exception as exc:
        return Outcome(error=str(exc) or exc.__class__.__name__)


def run_isolated(
    tasks: dict[Hashable, Callable[[], Any]],
    max_workers: int = _MAX_WORKERS,
) -> dict[Hashable, Outcome]:
    """Run zero-argument callables concurrently and join them all."""
    if not tasks:
        return {}
    results: dict[Hashable, Outcome] = {}
    with ThreadPoolExecutor(max_workers=min(max_workers, len(tasks))) as executor:
        futures = {executor.submit(_call, fn): key for key, fn in tasks.items()}
        for future in as_completed(futures):
            key = futures[future]
            results[key] = future.result()
            if not results[key].ok:
                logger.warning("Fetch %s failed: %s", key, results[key].error)
    return results


def collect_job_logs(
    jobs: list[dict],
    fetch_log: Callable[[int], str],
    fetch_job: Callable[[int], dict],
) -> list[JobLog]:
    """Fetch every job's log and details concurrently, in job order.

    A failed log fetch substitutes the literal error text for the log.
    A failed detail fetch leaves the duration already on the job record.
    """
    tasks: dict[Hashable, Callable[[], Any]] = {}
    for index, job in enumerate(jobs):
        job_id = job.get("id")
        tasks[("log", index)] = lambda job_id=job_id: fetch_log(job_id)
        tasks[("detail", index)] = lambda job_id=job_id: fetch_job(job_id)

    outcomes = run_isolated(tasks)

    job_logs: list[JobLog] = []
    for index, job in enumerate(jobs):
        job_id = job.get("id")
        log_outcome = outcomes[("log", index)]
        detail_outcome = outcomes[("detail", index)]

        duration = job.get("duration")
        if detail_outcome.ok and detail_outcome.value:
            duration = detail_outcome.value.get("duration") or duration

        if log_outcome.ok:
            log, log_error = log_outcome.value or "", None
        else:
            log = f"{LOG_ERROR_PREFIX}: {log_outcome.error}"
            log_error = log_outcome.error

        job_logs.append(JobLog(
            job_id=job_id,
            number=str(job.get("number") or job_id),
            log=log,
            state=job.get("state") or "unknown",
            duration=duration,
            config=job.get("config") or {},
            log_error=log_error,
        ))
    return job_logs

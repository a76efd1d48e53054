from __future__ import annotations

from typing import Iterable

from ..jobs.records import CITY_COMPLETED, CITY_ERROR_STATES

JOB_PENDING = "pending"
JOB_COMPLETED = "completed"
JOB_FAILED = "failed"


def compute_job_status(city_statuses: Iterable[str]) -> str:
    """
    Derive the job-level status from its city records.

    Job status is never stored; it is recomputed on every read.

    Rules:
    - every city "completed" -> "completed"
    - at least one city in an error state and none completed -> "failed"
    - anything else (including a mix of completed and failed cities) -> "pending"
    """
    statuses = [s for s in city_statuses if isinstance(s, str)]
    if not statuses:
        return JOB_PENDING

    if all(s == CITY_COMPLETED for s in statuses):
        return JOB_COMPLETED

    has_error = any(s in CITY_ERROR_STATES for s in statuses)
    has_completed = any(s == CITY_COMPLETED for s in statuses)
    if has_error and not has_completed:
        return JOB_FAILED

    return JOB_PENDING

"""Storage contract for jobs and their city records."""

from __future__ import annotations

from typing import List, Optional, Protocol

from ..exceptions import CityNotFoundError, InvalidCityTransitionError, ValidationError
from ..jobs.records import CITY_PENDING, CITY_TERMINAL_UPDATES, CityKey, CityRecord, Job, JobSnapshot


class JobStore(Protocol):
    """Exclusive owner of Job/CityRecord state, keyed by job_id."""

    async def create_job(self, job: Job, cities: List[CityRecord]) -> JobSnapshot:
        """Persist a job with its cities. Raises DuplicateJobError."""

    async def get_job(self, job_id: str) -> JobSnapshot:
        """Fetch a job and its cities. Raises JobNotFoundError."""

    async def find_status(self, job_id: str) -> Optional[JobSnapshot]:
        """Like get_job, but returns None for unknown ids."""

    async def get_status(self, job_id: str) -> JobSnapshot:
        """Derived job status plus all cities. Raises JobNotFoundError."""

    async def update_city_content(
        self,
        job_id: str,
        city_key: CityKey,
        content: Optional[str],
        status: str,
        *,
        error_message: Optional[str] = None,
    ) -> CityRecord:
        """Set content, status and updated_at of exactly one city record."""


def resolve_city(job_id: str, cities: List[CityRecord], city_key: CityKey) -> CityRecord:
    matches = city_key.resolve(cities)
    if len(matches) != 1:
        # Zero or ambiguous matches are both "unknown city key".
        raise CityNotFoundError(job_id, city_key.describe())
    return matches[0]


def check_transition(record: CityRecord, status: str) -> None:
    if record.status != CITY_PENDING or status not in CITY_TERMINAL_UPDATES:
        raise InvalidCityTransitionError(record.job_id, record.subpage_id, record.status, status)


def check_distinct_subpages(job_id: str, cities: List[CityRecord]) -> None:
    seen = set()
    for city in cities:
        if city.subpage_id in seen:
            raise ValidationError(f"Duplicate subpage_id '{city.subpage_id}' in job {job_id}")
        seen.add(city.subpage_id)

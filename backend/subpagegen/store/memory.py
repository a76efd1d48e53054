from __future__ import annotations

import asyncio
from dataclasses import replace
from typing import Dict, List, Optional

from ..exceptions import DuplicateJobError, JobNotFoundError
from ..jobs.records import CityKey, CityRecord, Job, JobSnapshot, utcnow
from ..logger import logger
from .base import check_distinct_subpages, check_transition, resolve_city


class InMemoryJobStore:
    """
    Process-local JobStore.

    Every mutation of a job's records happens under that job's lock, so a
    field-set update on one record is never observed half-applied. Jobs do not
    share locks and proceed independently.
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, Job] = {}
        self._cities: Dict[str, List[CityRecord]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._registry_lock = asyncio.Lock()

    def _snapshot(self, job_id: str) -> JobSnapshot:
        return JobSnapshot(
            job=replace(self._jobs[job_id]),
            cities=[c.copy() for c in self._cities[job_id]],
        )

    async def create_job(self, job: Job, cities: List[CityRecord]) -> JobSnapshot:
        check_distinct_subpages(job.job_id, cities)
        async with self._registry_lock:
            if job.job_id in self._jobs:
                raise DuplicateJobError(job.job_id)
            self._jobs[job.job_id] = replace(job)
            self._cities[job.job_id] = [replace(c, position=i) for i, c in enumerate(cities)]
            self._locks[job.job_id] = asyncio.Lock()
            logger.info(f"Job stored: {job.job_id}", extra={"job_id": job.job_id, "cities": len(cities)})
            return self._snapshot(job.job_id)

    async def find_status(self, job_id: str) -> Optional[JobSnapshot]:
        lock = self._locks.get(job_id)
        if lock is None:
            return None
        async with lock:
            return self._snapshot(job_id)

    async def get_job(self, job_id: str) -> JobSnapshot:
        snapshot = await self.find_status(job_id)
        if snapshot is None:
            raise JobNotFoundError(job_id)
        return snapshot

    async def get_status(self, job_id: str) -> JobSnapshot:
        return await self.get_job(job_id)

    async def update_city_content(
        self,
        job_id: str,
        city_key: CityKey,
        content: Optional[str],
        status: str,
        *,
        error_message: Optional[str] = None,
    ) -> CityRecord:
        lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFoundError(job_id)

        async with lock:
            record = resolve_city(job_id, self._cities[job_id], city_key)
            check_transition(record, status)
            record.generated_content = content
            record.status = status
            record.error_message = error_message
            record.updated_at = utcnow()
            return record.copy()

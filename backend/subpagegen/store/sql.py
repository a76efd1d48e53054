from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from ..exceptions import DuplicateJobError, JobNotFoundError
from ..jobs.records import CityKey, CityRecord, Job, JobSnapshot, utcnow
from ..logger import logger
from ..models import Base, CityRecordRow, JobRow
from .base import check_distinct_subpages, check_transition, resolve_city


def _aware(value: Optional[datetime]) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return utcnow()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _job_from_row(row: JobRow) -> Job:
    return Job(
        job_id=row.job_id,
        domain=row.domain or "",
        branche=row.branche,
        description=row.description,
        raw_domain=row.raw_domain or "",
        created_at=_aware(row.created_at),
    )


def _city_from_row(row: CityRecordRow) -> CityRecord:
    return CityRecord(
        job_id=row.job_id,
        name=row.name or "",
        postcode=row.postcode or "",
        country=row.country or "",
        subpage_id=row.subpage_id,
        status=row.status,
        generated_content=row.generated_content,
        error_message=row.error_message,
        position=row.position or 0,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


class SqlJobStore:
    """
    JobStore backed by SQLAlchemy async sessions.

    Each city update runs in its own transaction and locks the job's city rows
    (FOR UPDATE on backends that support it) before checking the transition.
    """

    def __init__(self, session_factory=None, engine: Optional[AsyncEngine] = None) -> None:
        if session_factory is None:
            from ..db import AsyncSessionLocal, engine as default_engine

            session_factory = AsyncSessionLocal
            engine = engine or default_engine
        self._session_factory = session_factory
        self._engine = engine

    async def create_schema(self) -> None:
        if self._engine is None:
            return
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Job store tables created")

    async def _load_cities(self, db: AsyncSession, job_id: str, *, for_update: bool = False) -> List[CityRecordRow]:
        stmt = select(CityRecordRow).filter(CityRecordRow.job_id == job_id).order_by(CityRecordRow.position)
        if for_update:
            stmt = stmt.with_for_update()
        res = await db.execute(stmt)
        return list(res.scalars().all())

    async def create_job(self, job: Job, cities: List[CityRecord]) -> JobSnapshot:
        check_distinct_subpages(job.job_id, cities)

        async with self._session_factory() as db:
            if await db.get(JobRow, job.job_id) is not None:
                raise DuplicateJobError(job.job_id)

            try:
                db.add(
                    JobRow(
                        job_id=job.job_id,
                        domain=job.domain,
                        raw_domain=job.raw_domain,
                        branche=job.branche,
                        description=job.description,
                        created_at=job.created_at,
                    )
                )
                # Parent row first so the FK holds on backends that enforce it.
                await db.flush()
                for position, city in enumerate(cities):
                    db.add(
                        CityRecordRow(
                            job_id=job.job_id,
                            position=position,
                            name=city.name,
                            postcode=city.postcode,
                            country=city.country,
                            subpage_id=city.subpage_id,
                            status=city.status,
                            generated_content=city.generated_content,
                            error_message=city.error_message,
                            created_at=city.created_at,
                            updated_at=city.updated_at,
                        )
                    )
                await db.commit()
            except IntegrityError:
                # subpage_ids are distinct at this point, so only a concurrent
                # create of the same job_id can violate a constraint.
                await db.rollback()
                raise DuplicateJobError(job.job_id)

        logger.info(f"Job stored: {job.job_id}", extra={"job_id": job.job_id, "cities": len(cities)})
        return await self.get_job(job.job_id)

    async def find_status(self, job_id: str) -> Optional[JobSnapshot]:
        async with self._session_factory() as db:
            row = await db.get(JobRow, job_id)
            if row is None:
                return None
            rows = await self._load_cities(db, job_id)
            return JobSnapshot(job=_job_from_row(row), cities=[_city_from_row(r) for r in rows])

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
        async with self._session_factory() as db:
            async with db.begin():
                if await db.get(JobRow, job_id) is None:
                    raise JobNotFoundError(job_id)

                rows = await self._load_cities(db, job_id, for_update=True)
                record = resolve_city(job_id, [_city_from_row(r) for r in rows], city_key)
                check_transition(record, status)

                row = next(r for r in rows if r.subpage_id == record.subpage_id)
                row.generated_content = content
                row.status = status
                row.error_message = error_message
                row.updated_at = utcnow()
                updated = _city_from_row(row)

            return updated

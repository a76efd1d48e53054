import asyncio
from contextlib import asynccontextmanager

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from subpagegen.exceptions import (
    CityNotFoundError,
    DuplicateJobError,
    InvalidCityTransitionError,
    JobNotFoundError,
    ValidationError,
)
from subpagegen.jobs.records import CityKey, CityRecord, Job
from subpagegen.store.factory import build_job_store
from subpagegen.store.memory import InMemoryJobStore
from subpagegen.store.sql import SqlJobStore


@asynccontextmanager
async def open_store(kind, tmp_path):
    if kind == "memory":
        yield InMemoryJobStore()
        return

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    session_factory = sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    store = SqlJobStore(session_factory=session_factory, engine=engine)
    await store.create_schema()
    try:
        yield store
    finally:
        await engine.dispose()


def _job(job_id="job-1"):
    job = Job(job_id=job_id, domain="example.com", raw_domain="https://example.com", branche="IT")
    cities = [
        CityRecord(job_id=job_id, name="Berlin", postcode="10115", country="Germany", subpage_id="example_com_berlin_10115"),
        CityRecord(job_id=job_id, name="Hamburg", postcode="20095", country="Germany", subpage_id="example_com_hamburg_20095"),
    ]
    return job, cities


STORES = pytest.mark.parametrize("kind", ["memory", "sql"])


@STORES
@pytest.mark.asyncio
async def test_create_and_read_keeps_city_order(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        await store.create_job(job, cities)

        snapshot = await store.get_job("job-1")
        assert snapshot.job.domain == "example.com"
        assert snapshot.job.raw_domain == "https://example.com"
        assert [c.name for c in snapshot.cities] == ["Berlin", "Hamburg"]
        assert [c.status for c in snapshot.cities] == ["pending", "pending"]
        assert snapshot.status == "pending"


@STORES
@pytest.mark.asyncio
async def test_duplicate_job_is_rejected(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        await store.create_job(job, cities)
        with pytest.raises(DuplicateJobError):
            await store.create_job(job, cities)


@STORES
@pytest.mark.asyncio
async def test_concurrent_create_of_same_job_reports_duplicate(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        results = await asyncio.gather(
            store.create_job(job, cities),
            store.create_job(job, cities),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], DuplicateJobError)
        assert len((await store.get_job("job-1")).cities) == 2


@STORES
@pytest.mark.asyncio
async def test_repeated_subpage_id_is_rejected_before_storing(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        cities[1].subpage_id = cities[0].subpage_id

        with pytest.raises(ValidationError):
            await store.create_job(job, cities)
        assert await store.find_status("job-1") is None


@STORES
@pytest.mark.asyncio
async def test_unknown_job(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        assert await store.find_status("missing") is None
        with pytest.raises(JobNotFoundError):
            await store.get_status("missing")


@STORES
@pytest.mark.asyncio
async def test_update_before_create_does_not_create_job(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        with pytest.raises(JobNotFoundError):
            await store.update_city_content("job-9", CityKey(name="Berlin"), "<p>x</p>", "completed")
        assert await store.find_status("job-9") is None


@STORES
@pytest.mark.asyncio
async def test_update_city_content_completes_job(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        created = await store.create_job(job, cities)
        before = created.cities[0].updated_at

        record = await store.update_city_content("job-1", CityKey(name="berlin"), "<p>Berlin</p>", "completed")
        assert record.status == "completed"
        assert record.generated_content == "<p>Berlin</p>"
        assert record.updated_at >= before
        assert (await store.get_status("job-1")).status == "pending"

        await store.update_city_content(
            "job-1", CityKey(subpage_id="example_com_hamburg_20095"), "<p>Hamburg</p>", "completed"
        )
        snapshot = await store.get_status("job-1")
        assert snapshot.status == "completed"
        assert [c.generated_content for c in snapshot.cities] == ["<p>Berlin</p>", "<p>Hamburg</p>"]


@STORES
@pytest.mark.asyncio
async def test_completed_city_is_not_overwritten(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        await store.create_job(job, cities)
        await store.update_city_content("job-1", CityKey(name="Berlin"), "<p>first</p>", "completed")

        with pytest.raises(InvalidCityTransitionError):
            await store.update_city_content("job-1", CityKey(name="Berlin"), "<p>second</p>", "completed")

        snapshot = await store.get_job("job-1")
        assert snapshot.cities[0].generated_content == "<p>first</p>"


@STORES
@pytest.mark.asyncio
async def test_update_to_pending_is_rejected(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        await store.create_job(job, cities)
        with pytest.raises(InvalidCityTransitionError):
            await store.update_city_content("job-1", CityKey(name="Berlin"), None, "pending")


@STORES
@pytest.mark.asyncio
async def test_error_update_fails_job_and_keeps_message(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job, cities = _job()
        await store.create_job(job, cities[:1])

        record = await store.update_city_content(
            "job-1", CityKey(name="Berlin"), None, "error_processing", error_message="engine crashed"
        )
        assert record.error_message == "engine crashed"
        assert (await store.get_status("job-1")).status == "failed"


@STORES
@pytest.mark.asyncio
async def test_unknown_and_ambiguous_city_keys(kind, tmp_path):
    async with open_store(kind, tmp_path) as store:
        job = Job(job_id="job-2", domain="example.com")
        cities = [
            CityRecord(job_id="job-2", name="Berlin", postcode="10115", country="Germany", subpage_id="b1"),
            CityRecord(job_id="job-2", name="Berlin", postcode="10117", country="Germany", subpage_id="b2"),
        ]
        await store.create_job(job, cities)

        with pytest.raises(CityNotFoundError):
            await store.update_city_content("job-2", CityKey(name="Paris"), "<p/>", "completed")
        with pytest.raises(CityNotFoundError):
            await store.update_city_content("job-2", CityKey(name="Berlin"), "<p/>", "completed")

        record = await store.update_city_content("job-2", CityKey(name="Berlin", postcode="10117"), "<p/>", "completed")
        assert record.subpage_id == "b2"


@pytest.mark.asyncio
async def test_memory_snapshots_are_copies():
    store = InMemoryJobStore()
    job, cities = _job()
    await store.create_job(job, cities)

    snapshot = await store.get_job("job-1")
    snapshot.cities[0].status = "completed"

    assert (await store.get_job("job-1")).cities[0].status == "pending"


@pytest.mark.asyncio
async def test_memory_concurrent_updates_on_distinct_cities():
    store = InMemoryJobStore()
    job, cities = _job()
    await store.create_job(job, cities)

    await asyncio.gather(
        store.update_city_content("job-1", CityKey(name="Berlin"), "<p>B</p>", "completed"),
        store.update_city_content("job-1", CityKey(name="Hamburg"), "<p>H</p>", "completed"),
    )
    assert (await store.get_status("job-1")).status == "completed"


@pytest.mark.asyncio
async def test_memory_concurrent_updates_on_same_city_apply_once():
    store = InMemoryJobStore()
    job, cities = _job()
    await store.create_job(job, cities)

    results = await asyncio.gather(
        store.update_city_content("job-1", CityKey(name="Berlin"), "<p>1</p>", "completed"),
        store.update_city_content("job-1", CityKey(name="Berlin"), "<p>2</p>", "completed"),
        return_exceptions=True,
    )
    assert sum(isinstance(r, InvalidCityTransitionError) for r in results) == 1


def test_build_job_store_backends():
    assert isinstance(build_job_store("memory"), InMemoryJobStore)
    with pytest.raises(ValueError):
        build_job_store("redis")

import pytest

from subpagegen.exceptions import (
    CityNotFoundError,
    InvalidCityTransitionError,
    JobNotFoundError,
    ValidationError,
)
from subpagegen.jobs.records import CityRecord, Job
from subpagegen.services.callbacks import CallbackIngester, normalize_callback_status, parse_callback
from subpagegen.store.memory import InMemoryJobStore


async def _store_with_job(names=("Berlin", "Hamburg")):
    store = InMemoryJobStore()
    job = Job(job_id="job-1", domain="example.com")
    cities = [
        CityRecord(job_id="job-1", name=name, postcode="", country="Germany", subpage_id=f"example_com_{name.lower()}")
        for name in names
    ]
    await store.create_job(job, cities)
    return store


@pytest.mark.parametrize("raw", ["completed", "completeted", "COMPLETED", None, ""])
def test_normalize_callback_status_completed_spellings(raw):
    assert normalize_callback_status(raw) == "completed"


def test_normalize_callback_status_failure_and_unknown():
    assert normalize_callback_status("failed") == "error_processing"
    with pytest.raises(ValidationError):
        normalize_callback_status("pending")


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {"content": "<p>x</p>"},
        {"job_id": "job-1"},
        {"job_id": "job-1", "content": "   "},
        {"cities": [{"name": "Berlin", "content": "<p/>"}]},
        {"job_id": "job-1", "cities": [{"content": "<p/>"}]},
        {"job_id": "job-1", "cities": [{"name": "Berlin"}]},
    ],
)
def test_parse_callback_rejects_incomplete_payloads(payload):
    with pytest.raises(ValidationError):
        parse_callback(payload)


def test_parse_callback_single_city_shape():
    job_id, updates = parse_callback({"job_id": "job-1", "city": "Berlin", "content": "<p/>", "status": "completeted"})
    assert job_id == "job-1"
    assert len(updates) == 1
    assert updates[0].city_key.name == "Berlin"
    assert updates[0].status == "completed"


def test_parse_callback_multi_city_shape_falls_back_to_top_level_content():
    _, updates = parse_callback(
        {
            "job_id": "job-1",
            "content": "<p>shared</p>",
            "cities": [{"name": "Berlin", "postcode": "10115"}, {"name": "Hamburg", "content": "<p>own</p>"}],
        }
    )
    assert [u.content for u in updates] == ["<p>shared</p>", "<p>own</p>"]
    assert updates[0].city_key.postcode == "10115"


@pytest.mark.asyncio
async def test_ingest_single_city_callback():
    store = await _store_with_job()
    ingester = CallbackIngester(store)

    result = await ingester.ingest({"job_id": "job-1", "city": "Hamburg", "content": "<p>H</p>", "status": "completed"})

    assert [r.name for r in result.applied] == ["Hamburg"]
    snapshot = await store.get_job("job-1")
    assert snapshot.cities[1].status == "completed"
    assert snapshot.cities[1].generated_content == "<p>H</p>"
    assert snapshot.cities[0].status == "pending"


@pytest.mark.asyncio
async def test_ingest_without_city_targets_first_pending_record():
    store = await _store_with_job()
    ingester = CallbackIngester(store)

    await ingester.ingest({"job_id": "job-1", "content": "<p>1</p>"})
    await ingester.ingest({"job_id": "job-1", "content": "<p>2</p>"})

    snapshot = await store.get_status("job-1")
    assert [c.generated_content for c in snapshot.cities] == ["<p>1</p>", "<p>2</p>"]
    assert snapshot.status == "completed"


@pytest.mark.asyncio
async def test_ingest_multi_city_callback():
    store = await _store_with_job()
    ingester = CallbackIngester(store)

    result = await ingester.ingest(
        {
            "job_id": "job-1",
            "cities": [
                {"name": "Berlin", "content": "<p>B</p>"},
                {"name": "Hamburg", "content": "<p>H</p>", "status": "failed", "error": "timeout"},
            ],
        }
    )

    assert len(result.applied) == 2
    snapshot = await store.get_status("job-1")
    assert [c.status for c in snapshot.cities] == ["completed", "error_processing"]
    assert snapshot.cities[1].error_message == "timeout"
    assert snapshot.status == "pending"


@pytest.mark.asyncio
async def test_ingest_partial_rejection_keeps_applied_cities():
    store = await _store_with_job()
    ingester = CallbackIngester(store)

    result = await ingester.ingest(
        {
            "job_id": "job-1",
            "cities": [{"name": "Berlin", "content": "<p>B</p>"}, {"name": "Paris", "content": "<p>P</p>"}],
        }
    )

    assert [r.name for r in result.applied] == ["Berlin"]
    assert result.rejected[0]["error"] == "CITY_NOT_FOUND"


@pytest.mark.asyncio
async def test_ingest_unknown_job_does_not_create_it():
    store = await _store_with_job()
    ingester = CallbackIngester(store)

    with pytest.raises(JobNotFoundError):
        await ingester.ingest({"job_id": "job-404", "city": "Berlin", "content": "<p/>"})
    assert await store.find_status("job-404") is None


@pytest.mark.asyncio
async def test_ingest_unknown_city_and_replay():
    store = await _store_with_job()
    ingester = CallbackIngester(store)

    with pytest.raises(CityNotFoundError):
        await ingester.ingest({"job_id": "job-1", "city": "Paris", "content": "<p/>"})

    await ingester.ingest({"job_id": "job-1", "city": "Berlin", "content": "<p>first</p>"})
    with pytest.raises(InvalidCityTransitionError):
        await ingester.ingest({"job_id": "job-1", "city": "Berlin", "content": "<p>again</p>"})

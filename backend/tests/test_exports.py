import pytest
from httpx import ASGITransport, AsyncClient

import subpagegen.routes.exports as exports_module
import subpagegen.services.storage as storage_module
from subpagegen.exceptions import S3StorageError
from subpagegen.jobs.records import CityKey, CityRecord, Job
from subpagegen.main import app
from subpagegen.store.factory import get_job_store
from subpagegen.store.memory import InMemoryJobStore
from subpagegen.tasks import export_components


class DummyS3:
    def __init__(self, keys=None, put_error=None):
        self.keys = list(keys or [])
        self.put_error = put_error
        self.put_calls = []

    def put_object(self, **kwargs):
        if self.put_error is not None:
            raise self.put_error
        self.put_calls.append(kwargs)
        return {}

    def get_paginator(self, name):
        assert name == "list_objects_v2"
        keys = self.keys

        class _Paginator:
            def paginate(self, Bucket, Prefix):
                return [{"Contents": [{"Key": k} for k in keys if k.startswith(Prefix)]}]

        return _Paginator()

    def generate_presigned_url(self, op, Params, ExpiresIn):
        return f"https://s3.test/{Params['Key']}?expires={ExpiresIn}"


class DummyTask:
    def __init__(self):
        self.calls = []

    def apply_async(self, args=None, queue=None):
        self.calls.append((args, queue))

    def delay(self, *args):
        self.calls.append((args, None))


CITIES = [
    {"subpage_id": "example_com_berlin_10115", "name": "Berlin", "content": "<body><p class='x'>B</p></body>"},
    {"subpage_id": "example_com_hamburg_20095", "name": "Hamburg", "content": "<p>H</p>"},
]


def test_export_components_uploads_each_city(monkeypatch):
    dummy_s3 = DummyS3()
    monkeypatch.setattr(storage_module, "s3", dummy_s3)

    result = export_components("job-1", "https://example.com", CITIES)

    assert result["uploaded"] == [
        "exports/job-1/example_com_berlin_10115.tsx",
        "exports/job-1/example_com_hamburg_20095.tsx",
    ]
    first = dummy_s3.put_calls[0]
    assert first["ContentType"].startswith("text/typescript")
    assert first["ContentDisposition"] == "attachment; filename*=UTF-8''berlin-subpage.tsx"
    assert b"export default function BerlinSubpage" in first["Body"]


def test_export_components_raises_when_nothing_uploaded(monkeypatch):
    monkeypatch.setattr(storage_module, "s3", DummyS3(put_error=RuntimeError("denied")))

    with pytest.raises(S3StorageError):
        export_components("job-1", "https://example.com", CITIES)


async def _completed_store():
    store = InMemoryJobStore()
    job = Job(job_id="job-1", domain="example.com", raw_domain="https://example.com")
    cities = [
        CityRecord(job_id="job-1", name="Berlin", postcode="10115", country="Germany", subpage_id="example_com_berlin_10115"),
        CityRecord(job_id="job-1", name="Hamburg", postcode="20095", country="Germany", subpage_id="example_com_hamburg_20095"),
    ]
    await store.create_job(job, cities)
    await store.update_city_content("job-1", CityKey(name="Berlin"), "<p>B</p>", "completed")
    return store


@pytest.mark.asyncio
async def test_queue_export_sends_completed_cities(monkeypatch):
    store = await _completed_store()
    task = DummyTask()
    monkeypatch.setattr(exports_module, "export_components_task", task)
    app.dependency_overrides[get_job_store] = lambda: store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/jobs/job-1/exports")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 202
    assert response.json()["subpage_ids"] == ["example_com_berlin_10115"]
    (args, queue), = task.calls
    assert queue == "exports"
    assert args[0] == "job-1"
    assert args[1] == "https://example.com"
    assert args[2] == [{"subpage_id": "example_com_berlin_10115", "name": "Berlin", "content": "<p>B</p>"}]


@pytest.mark.asyncio
async def test_queue_export_without_completed_cities_is_conflict(monkeypatch):
    store = InMemoryJobStore()
    await store.create_job(
        Job(job_id="job-2", domain="example.com"),
        [CityRecord(job_id="job-2", name="Berlin", postcode="", country="Germany", subpage_id="b")],
    )
    monkeypatch.setattr(exports_module, "export_components_task", DummyTask())
    app.dependency_overrides[get_job_store] = lambda: store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.post("/jobs/job-2/exports")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_list_exports_presigns_uploaded_components(monkeypatch):
    store = await _completed_store()
    monkeypatch.setattr(
        storage_module,
        "s3",
        DummyS3(keys=["exports/job-1/example_com_berlin_10115.tsx", "exports/job-10/other.tsx"]),
    )
    app.dependency_overrides[get_job_store] = lambda: store
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/jobs/job-1/exports")
    finally:
        app.dependency_overrides.clear()

    assert response.status_code == 200
    exports = response.json()["exports"]
    assert exports == [
        {
            "subpage_id": "example_com_berlin_10115",
            "filename": "berlin-subpage.tsx",
            "url": "https://s3.test/exports/job-1/example_com_berlin_10115.tsx?expires=3600",
        }
    ]


def test_export_components_encodes_non_ascii_filenames(monkeypatch):
    dummy_s3 = DummyS3()
    monkeypatch.setattr(storage_module, "s3", dummy_s3)

    cities = [{"subpage_id": "example_com_k_ln_50667", "name": 'Köln "Zentrum"', "content": "<p>K</p>"}]
    result = export_components("job-1", "https://example.com", cities)

    assert result["uploaded"] == ["exports/job-1/example_com_k_ln_50667.tsx"]
    disposition = dummy_s3.put_calls[0]["ContentDisposition"]
    assert disposition == "attachment; filename*=UTF-8''k%C3%B6ln-%22zentrum%22-subpage.tsx"
    disposition.encode("latin-1")

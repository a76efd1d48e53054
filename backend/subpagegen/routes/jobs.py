"""
Job routes - submission, dispatch, strict reads and component downloads
"""
from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import Response
from typing import Any
from urllib.parse import quote

from ..config import settings
from ..deps import get_dispatcher
from ..exceptions import TransientDispatchError
from ..jobs.records import CITY_COMPLETED, CITY_PENDING, CityKey, CityRecord, JobSnapshot
from ..logger import logger
from ..rendering.transcoder import component_filename, transcode
from ..schemas import CityOut, CreateJobResponse, DispatchResponse, JobOut
from ..services.dispatcher import Dispatcher
from ..services.request_builder import build_job_request
from ..store.base import JobStore, resolve_city
from ..store.factory import get_job_store

router = APIRouter(tags=["Jobs"])

FALLBACK_CITY_NAME = "Generated Location"

def _city_to_out(city: CityRecord) -> CityOut:
    return CityOut(
        name=city.name,
        postcode=city.postcode,
        country=city.country,
        subpage_id=city.subpage_id,
        status=city.status,
        generated_html=city.generated_content,
        error_message=city.error_message,
        created_at=city.created_at,
        updated_at=city.updated_at,
    )

def _snapshot_to_job(snapshot: JobSnapshot) -> JobOut:
    return JobOut(
        job_id=snapshot.job_id,
        domain=snapshot.job.domain,
        branche=snapshot.job.branche,
        description=snapshot.job.description,
        status=snapshot.status,
        created_at=snapshot.job.created_at,
        updated_at=snapshot.updated_at,
        cities=[_city_to_out(c) for c in snapshot.cities],
    )

def component_domain(snapshot: JobSnapshot) -> str:
    return snapshot.job.raw_domain or snapshot.job.domain

@router.post("/jobs", response_model=CreateJobResponse, status_code=201)
async def create_job(
    payload: Any = Body(...),
    store: JobStore = Depends(get_job_store),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Normalize a submission, store it and hand it to the generation engine.

    Submissions without cities or with a malformed payload are stored as
    failed jobs and not dispatched.
    """
    result = build_job_request(payload, default_country=settings.DEFAULT_COUNTRY)
    snapshot = await store.create_job(result.job, result.cities)

    logger.info(
        f"Job created: {snapshot.job_id}",
        extra={"job_id": snapshot.job_id, "domain": snapshot.job.domain, "cities": len(snapshot.cities)},
    )

    dispatched = False
    if result.dispatchable:
        try:
            await dispatcher.dispatch(snapshot.job, snapshot.cities)
        except TransientDispatchError as e:
            raise TransientDispatchError(f"{e.message} (job {snapshot.job_id} stored but not dispatched)")
        dispatched = True
    else:
        logger.warning(f"Job {snapshot.job_id} not dispatched: no pending cities", extra={"job_id": snapshot.job_id})

    return CreateJobResponse(
        job_id=snapshot.job_id,
        status=snapshot.status,
        dispatched=dispatched,
        error=result.error,
        cities=[_city_to_out(c) for c in snapshot.cities],
    )

@router.post("/jobs/{job_id}/dispatch", response_model=DispatchResponse)
async def redispatch_job(
    job_id: str,
    store: JobStore = Depends(get_job_store),
    dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """Caller-driven retry after a failed dispatch."""
    snapshot = await store.get_job(job_id)
    if not any(c.status == CITY_PENDING for c in snapshot.cities):
        raise HTTPException(status_code=409, detail=f"Job {job_id} has no pending cities")

    receipt = await dispatcher.dispatch(snapshot.job, snapshot.cities)
    return DispatchResponse(job_id=job_id, dispatched=True, accepted_at=receipt.accepted_at)

@router.get("/jobs/{job_id}", response_model=JobOut)
async def get_job(job_id: str, store: JobStore = Depends(get_job_store)):
    """
    Strict read: unknown ids are 404, unlike /job-status and /job-data.
    """
    snapshot = await store.get_job(job_id)
    return _snapshot_to_job(snapshot)

@router.get("/jobs/{job_id}/cities/{subpage_id}/component")
async def download_component(job_id: str, subpage_id: str, store: JobStore = Depends(get_job_store)):
    """
    Transcoded TSX component for one completed city, as a file download.
    """
    snapshot = await store.get_job(job_id)
    city = resolve_city(job_id, snapshot.cities, CityKey(subpage_id=subpage_id))

    if city.status != CITY_COMPLETED or not city.generated_content:
        raise HTTPException(status_code=409, detail=f"City {subpage_id} has no generated content yet")

    name = city.name or FALLBACK_CITY_NAME
    source = transcode(city.generated_content, name, component_domain(snapshot))
    filename = component_filename(name)

    return Response(
        content=source,
        media_type="text/typescript",
        headers={"Content-Disposition": f"attachment; filename*=UTF-8''{quote(filename)}"},
    )

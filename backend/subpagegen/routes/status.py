"""
Status routes - lenient reads used by polling clients

Both endpoints report an unknown job_id as "pending": a job that does not
exist yet cannot be told apart from one still being generated. Callers that
need that distinction track their submission and use GET /jobs/{job_id}.
"""
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from ..jobs.records import JobSnapshot
from ..logger import logger
from ..schemas import JobData, JobDataCity, JobDataResponse, JobStatusResponse
from ..store.base import JobStore
from ..store.factory import get_job_store

router = APIRouter(tags=["Status"])

def _require_job_id(job_id: Optional[str]) -> str:
    if not job_id or not job_id.strip():
        raise HTTPException(status_code=400, detail="Missing job_id parameter")
    return job_id.strip()

def _snapshot_to_job_data(snapshot: JobSnapshot) -> JobData:
    cities = [
        JobDataCity(
            name=c.name,
            postcode=c.postcode,
            country=c.country,
            subpage_id=c.subpage_id,
            status=c.status,
            generated_html=c.generated_content,
        )
        for c in snapshot.cities
    ]
    first = snapshot.first_city()
    return JobData(
        job_id=snapshot.job_id,
        domain=snapshot.job.domain,
        status=snapshot.status,
        content=first.generated_content if first else None,
        cities=cities,
        city=(first.name or None) if first else None,
    )

@router.get("/job-status", response_model=JobStatusResponse)
async def job_status(job_id: Optional[str] = Query(None), store: JobStore = Depends(get_job_store)):
    """
    Legacy single-city status read.
    """
    job_id = _require_job_id(job_id)
    snapshot = await store.find_status(job_id)

    if snapshot is None:
        logger.info(f"Job {job_id} not found, returning pending", extra={"job_id": job_id})
        return JobStatusResponse(status="pending", message="Job is still processing...")

    first = snapshot.first_city()
    return JobStatusResponse(
        status=snapshot.status,
        content=first.generated_content if first else None,
        city=(first.name or None) if first else None,
        domain=snapshot.job.domain,
        timestamp=snapshot.updated_at,
    )

@router.get("/job-data", response_model=JobDataResponse)
async def job_data(job_id: Optional[str] = Query(None), store: JobStore = Depends(get_job_store)):
    """
    Full job read with every city; the shape polled by StatusPoller clients.
    """
    job_id = _require_job_id(job_id)
    snapshot = await store.find_status(job_id)

    if snapshot is None:
        return JobDataResponse(success=False, status="pending", message="Job not found or still processing...")

    return JobDataResponse(success=True, data=_snapshot_to_job_data(snapshot))

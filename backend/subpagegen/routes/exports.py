"""
Export routes - batch component uploads to S3
"""
from fastapi import APIRouter, Depends, HTTPException
import os

from ..jobs.records import CITY_COMPLETED
from ..logger import logger
from ..rendering.transcoder import component_filename
from ..schemas import ExportItem, ExportListResponse, ExportQueuedResponse
from ..services import storage
from ..store.base import JobStore
from ..store.factory import get_job_store
from ..tasks import export_components_task
from .jobs import FALLBACK_CITY_NAME, component_domain

router = APIRouter(tags=["Exports"])

@router.post("/jobs/{job_id}/exports", response_model=ExportQueuedResponse, status_code=202)
async def queue_export(job_id: str, store: JobStore = Depends(get_job_store)):
    """
    Queue transcoding + upload of every completed city of a job.
    """
    snapshot = await store.get_job(job_id)
    cities = [
        {
            "subpage_id": c.subpage_id,
            "name": c.name or FALLBACK_CITY_NAME,
            "content": c.generated_content,
        }
        for c in snapshot.cities
        if c.status == CITY_COMPLETED and c.generated_content
    ]
    if not cities:
        raise HTTPException(status_code=409, detail=f"Job {job_id} has no completed cities to export")

    args = (job_id, component_domain(snapshot), cities)
    try:
        export_components_task.apply_async(args=args, queue="exports")
    except Exception:
        export_components_task.delay(*args)

    logger.info(f"Job {job_id} queued for export", extra={"job_id": job_id, "cities": len(cities)})
    return ExportQueuedResponse(job_id=job_id, queued=len(cities), subpage_ids=[c["subpage_id"] for c in cities])

@router.get("/jobs/{job_id}/exports", response_model=ExportListResponse)
async def list_exports(job_id: str, store: JobStore = Depends(get_job_store)):
    """
    Presigned download URLs for the components uploaded so far.
    """
    snapshot = await store.get_job(job_id)
    names = {c.subpage_id: (c.name or FALLBACK_CITY_NAME) for c in snapshot.cities}

    items = []
    for key in storage.list_keys(storage.export_prefix(job_id)):
        subpage_id = os.path.splitext(os.path.basename(key))[0]
        try:
            url = storage.presigned_get(key)
        except Exception as e:
            logger.warning(f"Failed to presign export {key}: {e}", extra={"job_id": job_id})
            url = None
        items.append(
            ExportItem(
                subpage_id=subpage_id,
                filename=component_filename(names.get(subpage_id, subpage_id)),
                url=url,
            )
        )

    return ExportListResponse(job_id=job_id, exports=items)

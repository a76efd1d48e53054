"""
Callback route - completion events from the generation engine
"""
from fastapi import APIRouter, Body, Depends
from typing import Any

from ..deps import get_callback_ingester
from ..schemas import CallbackRejection, CallbackResponse
from ..services.callbacks import CallbackIngester

router = APIRouter(tags=["Callbacks"])

@router.post("/subpage-callback", response_model=CallbackResponse)
async def subpage_callback(
    payload: Any = Body(...),
    ingester: CallbackIngester = Depends(get_callback_ingester),
):
    """
    Store generated content for one or more cities of a job.

    Invalid events are 400, unknown jobs/cities 404, repeated completions 409.
    Nothing is retried here.
    """
    result = await ingester.ingest(payload)
    return CallbackResponse(
        success=True,
        message="Callback received successfully",
        job_id=result.job_id,
        applied=[r.subpage_id for r in result.applied],
        rejected=[CallbackRejection(**r) for r in result.rejected],
    )

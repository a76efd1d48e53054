import traceback
from typing import Any, Dict, List
from .workers import celery_app
from .exceptions import S3StorageError
from .rendering.transcoder import transcode_component, component_filename
from .services.storage import export_key, put_component_source
from .logger import logger


def export_components(job_id: str, domain: str, cities: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Transcode each completed city and upload the component to S3.

    `cities` items carry subpage_id, name and content; the caller reads them
    from the job store so the worker does not need store access.
    """
    logger.info(f"Starting component export for job: {job_id}", extra={"job_id": job_id, "cities": len(cities)})

    uploaded: List[str] = []
    for city in cities:
        subpage_id = city["subpage_id"]
        name = city.get("name") or "Generated Location"
        component = transcode_component(city.get("content") or "", name, domain)
        key = export_key(job_id, subpage_id)
        try:
            put_component_source(key, component.source, component_filename(name))
            uploaded.append(key)
        except S3StorageError as e:
            logger.error(
                f"Export failed for city {subpage_id}: {e.message}",
                extra={"job_id": job_id, "subpage_id": subpage_id},
            )

    if cities and not uploaded:
        raise S3StorageError(f"No components exported for job {job_id}")

    logger.info(
        f"Job {job_id} exported {len(uploaded)} components",
        extra={"job_id": job_id, "uploaded": uploaded},
    )
    return {"job_id": job_id, "uploaded": uploaded}


@celery_app.task(bind=True, acks_late=True, max_retries=0)
def export_components_task(self, job_id: str, domain: str, cities: List[Dict[str, Any]]):
    """
    Celery task wrapping export_components.
    """
    try:
        return export_components(job_id, domain, cities)
    except Exception as e:
        logger.error(
            f"Component export failed for job {job_id}: {str(e)}",
            extra={
                "job_id": job_id,
                "error": str(e),
                "traceback": traceback.format_exc(),
            }
        )
        raise

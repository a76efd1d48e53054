from celery import Celery
from .config import settings

def _route_task(name, args, kwargs, options, task=None):
    """
    Route tasks to dedicated queues.

    Call sites fall back to `.delay(...)` when `.apply_async(..., queue=...)`
    fails; the router keeps both paths on the same queue.
    """
    if name == "subpagegen.tasks.export_components_task":
        return {"queue": "exports"}

    return None

celery_app = Celery(
    "subpagegen",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["subpagegen.tasks"]
)

celery_app.conf.update(
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_acks_late=True,
    task_routes=(_route_task,),
)

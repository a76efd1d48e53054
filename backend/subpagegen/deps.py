"""FastAPI dependencies shared by the routers."""
from __future__ import annotations

from fastapi import Depends

from .config import settings
from .services.callbacks import CallbackIngester
from .services.dispatcher import Dispatcher
from .store.base import JobStore
from .store.factory import get_job_store


def get_dispatcher() -> Dispatcher:
    return Dispatcher(settings.GENERATION_WEBHOOK_URL, timeout=settings.DISPATCH_TIMEOUT_SECONDS)


def get_callback_ingester(store: JobStore = Depends(get_job_store)) -> CallbackIngester:
    return CallbackIngester(store)

from __future__ import annotations

from functools import lru_cache

from ..config import settings
from .base import JobStore
from .memory import InMemoryJobStore


def build_job_store(backend: str) -> JobStore:
    """Factory for the configured JobStore backend."""
    backend = (backend or "memory").strip().lower()
    if backend == "sql":
        from .sql import SqlJobStore

        return SqlJobStore()
    if backend == "memory":
        return InMemoryJobStore()
    raise ValueError(f"Unsupported JOB_STORE_BACKEND: {backend}")


@lru_cache(maxsize=1)
def get_job_store() -> JobStore:
    """Process-wide store; used as a FastAPI dependency."""
    return build_job_store(settings.JOB_STORE_BACKEND)

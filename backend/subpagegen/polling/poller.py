from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx

from ..logger import logger


SUCCESS_STATUSES = frozenset({"completed", "completeted"})
FAILURE_STATUSES = frozenset({"failed", "error"})

MESSAGE_PENDING = "Job created successfully. AI is generating your subpages..."
MESSAGE_SUCCESS = "Subpages generated successfully! Redirecting to download page..."
MESSAGE_FAILED = "Failed to generate subpage. Please try again."
MESSAGE_TIMEOUT = "Timeout: Subpage generation took too long. Please try again."
MESSAGE_POLL_ERROR = "Error checking job status. Please try again."

StatusFetcher = Callable[[str], Awaitable[Dict[str, Any]]]
Callback = Callable[..., Any]


class PollOutcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"


@dataclass(frozen=True)
class PollResult:
    job_id: str
    outcome: PollOutcome
    message: str
    attempts: int
    payload: Optional[Dict[str, Any]] = None


def classify_status(payload: Dict[str, Any]) -> Optional[PollOutcome]:
    """Terminal outcome for one status payload, or None while still pending."""
    status = str(payload.get("status") or "").strip().lower()
    if status in SUCCESS_STATUSES:
        return PollOutcome.SUCCESS
    if status in FAILURE_STATUSES:
        return PollOutcome.FAILED

    cities = payload.get("cities")
    if isinstance(cities, list) and cities:
        city_statuses = [str(c.get("status") or "").lower() for c in cities if isinstance(c, dict)]
        if len(city_statuses) == len(cities) and all(s in SUCCESS_STATUSES for s in city_statuses):
            return PollOutcome.SUCCESS

    return None


class StatusPoller:
    """
    Cooperative polling loop for one submitted job.

    Waits `initial_delay`, then fetches the status every `interval` seconds for
    at most `max_attempts` fetches. Ends in exactly one of success, failed or
    timeout. On success, `on_ready` fires immediately and `on_handoff` after
    `settle_delay`. Fetch errors are transient and only consume an attempt.

    `cancel()` stops the loop and guarantees no callback runs afterwards.
    A finished poller can be started again; each run counts attempts from zero.
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        *,
        initial_delay: float = 3.0,
        interval: float = 5.0,
        max_attempts: int = 60,
        settle_delay: float = 7.0,
        on_update: Optional[Callback] = None,
        on_ready: Optional[Callback] = None,
        on_handoff: Optional[Callback] = None,
        on_failure: Optional[Callback] = None,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.fetch_status = fetch_status
        self.initial_delay = initial_delay
        self.interval = interval
        self.max_attempts = max_attempts
        self.settle_delay = settle_delay
        self.on_update = on_update
        self.on_ready = on_ready
        self.on_handoff = on_handoff
        self.on_failure = on_failure
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None
        self._cancelled = False
        self.attempts = 0
        self.result: Optional[PollResult] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def start(self, job_id: str) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            raise RuntimeError("Poller is already running")
        self._cancelled = False
        self._task = asyncio.get_running_loop().create_task(self.run(job_id))
        return self._task

    def cancel(self) -> None:
        self._cancelled = True
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def _wait(self, seconds: float) -> None:
        if self._cancelled:
            raise asyncio.CancelledError()
        sleep = self._sleep or asyncio.sleep
        await sleep(seconds)
        if self._cancelled:
            raise asyncio.CancelledError()

    async def _emit(self, callback: Optional[Callback], *args: Any) -> None:
        if callback is None or self._cancelled:
            return
        res = callback(*args)
        if inspect.isawaitable(res):
            await res

    async def _finish(self, result: PollResult) -> PollResult:
        self.result = result
        logger.info(
            f"Polling finished for job {result.job_id}: {result.outcome.value}",
            extra={"job_id": result.job_id, "outcome": result.outcome.value, "attempts": result.attempts},
        )
        if result.outcome is PollOutcome.SUCCESS:
            await self._emit(self.on_ready, result)
            await self._wait(self.settle_delay)
            await self._emit(self.on_handoff, result)
        else:
            await self._emit(self.on_failure, result)
        return result

    async def run(self, job_id: str) -> PollResult:
        self.attempts = 0
        self.result = None
        await self._wait(self.initial_delay)

        payload: Optional[Dict[str, Any]] = None
        last_error: Optional[Exception] = None

        while self.attempts < self.max_attempts:
            self.attempts += 1
            logger.debug(f"Polling job status, attempt {self.attempts}/{self.max_attempts}", extra={"job_id": job_id})
            try:
                payload = await self.fetch_status(job_id)
                last_error = None
            except Exception as e:
                last_error = e
                logger.warning(f"Error polling job status: {e}", extra={"job_id": job_id, "attempt": self.attempts})
            else:
                if self._cancelled:
                    raise asyncio.CancelledError()
                await self._emit(self.on_update, payload)

                outcome = classify_status(payload)
                if outcome is PollOutcome.SUCCESS:
                    return await self._finish(PollResult(job_id, outcome, MESSAGE_SUCCESS, self.attempts, payload))
                if outcome is PollOutcome.FAILED:
                    return await self._finish(PollResult(job_id, outcome, MESSAGE_FAILED, self.attempts, payload))

            if self.attempts < self.max_attempts:
                await self._wait(self.interval)

        message = MESSAGE_POLL_ERROR if last_error is not None else MESSAGE_TIMEOUT
        return await self._finish(PollResult(job_id, PollOutcome.TIMEOUT, message, self.attempts, payload))


class HttpStatusFetcher:
    """Reads job state from the service's `/job-data` endpoint."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def __call__(self, job_id: str) -> Dict[str, Any]:
        async with httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self._transport) as client:
            r = await client.get("/job-data", params={"job_id": job_id})
            r.raise_for_status()
            body = r.json()

        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(body, dict) and body.get("success") and isinstance(data, dict):
            return data

        status = body.get("status") if isinstance(body, dict) else None
        return {"job_id": job_id, "status": status or "pending", "cities": []}

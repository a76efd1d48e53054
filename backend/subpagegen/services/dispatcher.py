from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

import httpx

from ..exceptions import TransientDispatchError
from ..jobs.records import CITY_PENDING, CityRecord, Job, utcnow
from ..logger import logger


@dataclass(frozen=True)
class DispatchReceipt:
    job_id: str
    status_code: int
    accepted_at: datetime
    body: Any = None


def build_dispatch_payload(job: Job, cities: List[CityRecord]) -> Dict[str, Any]:
    """
    Wire payload for the generation engine:
    {job_id, domain, branche?, description?, cities: [{name, postcode, country}]}
    """
    payload: Dict[str, Any] = {
        "job_id": job.job_id,
        "domain": f"https://{job.domain}",
        "cities": [
            {"name": c.name, "postcode": c.postcode, "country": c.country}
            for c in cities
            if c.status == CITY_PENDING
        ],
    }
    if job.branche:
        payload["branche"] = job.branche
    if job.description:
        payload["description"] = job.description
    return payload


class Dispatcher:
    """
    One-shot hand-off of a job to the generation engine.

    A successful call only means the engine accepted the job; results arrive
    later through the callback endpoint. Failures are reported, never retried.
    """

    def __init__(
        self,
        webhook_url: str,
        *,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._transport = transport

    async def dispatch(self, job: Job, cities: List[CityRecord]) -> DispatchReceipt:
        payload = build_dispatch_payload(job, cities)
        logger.info(
            f"Dispatching job {job.job_id}",
            extra={"job_id": job.job_id, "cities": len(payload["cities"]), "webhook_url": self.webhook_url},
        )

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.webhook_url, json=payload, headers={"Content-Type": "application/json"})
        except httpx.TimeoutException as e:
            logger.error(f"Dispatch timed out for job {job.job_id}: {e}", extra={"job_id": job.job_id})
            raise TransientDispatchError(f"Generation engine timed out after {self.timeout}s")
        except httpx.HTTPError as e:
            logger.error(f"Dispatch failed for job {job.job_id}: {e}", extra={"job_id": job.job_id})
            raise TransientDispatchError(f"Failed to reach generation engine: {e}")

        if r.status_code >= 400:
            logger.error(
                f"Generation engine rejected job {job.job_id}: {r.status_code}",
                extra={"job_id": job.job_id, "status_code": r.status_code, "body": r.text[:500]},
            )
            raise TransientDispatchError(f"Generation engine rejected request: {r.status_code}")

        try:
            body = r.json()
        except ValueError:
            body = r.text or None

        logger.info(f"Job {job.job_id} accepted by generation engine", extra={"job_id": job.job_id})
        return DispatchReceipt(job_id=job.job_id, status_code=r.status_code, accepted_at=utcnow(), body=body)

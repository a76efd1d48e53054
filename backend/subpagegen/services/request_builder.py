from __future__ import annotations

import itertools
import re
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from ..jobs.records import (
    CITY_ERROR_NO_CITIES,
    CITY_ERROR_PROCESSING,
    CITY_PENDING,
    DESCRIPTION_MAX_LENGTH,
    CityRecord,
    Job,
    utcnow,
)
from ..logger import logger


_PROTOCOL_RE = re.compile(r"^https?://", flags=re.IGNORECASE)
_WWW_RE = re.compile(r"^www\.", flags=re.IGNORECASE)
_NON_ALNUM_RUN_RE = re.compile(r"[^a-z0-9]+")

NO_POSTCODE = "no_postcode"

_job_sequence = itertools.count(1)


class MalformedRequestError(ValueError):
    """Internal signal for payloads that cannot be turned into a job."""


@dataclass
class BuildResult:
    job: Job
    cities: List[CityRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def dispatchable(self) -> bool:
        return any(c.status == CITY_PENDING for c in self.cities)


def normalize_domain(domain: str) -> str:
    """
    "https://www.Example.com/" -> "example.com"
    """
    value = (domain or "").strip()
    value = _PROTOCOL_RE.sub("", value)
    value = _WWW_RE.sub("", value)
    if value.endswith("/"):
        value = value[:-1]
    return value.lower().strip()


def sanitize_token(value: str) -> str:
    return _NON_ALNUM_RUN_RE.sub("_", (value or "").lower())


def build_subpage_id(domain: str, city_name: str, postcode: Optional[str]) -> str:
    return f"{sanitize_token(domain)}_{sanitize_token(city_name)}_{postcode or NO_POSTCODE}"


def generate_job_id() -> str:
    """Millisecond timestamp, process-wide sequence and a random suffix."""
    millis = int(time.time() * 1000)
    return f"{millis}-{next(_job_sequence)}-{uuid.uuid4().hex[:8]}"


def _optional_text(value: Any, limit: Optional[int] = None) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None
    if limit is not None and len(text) > limit:
        text = text[:limit]
    return text


def _caller_job_id(raw: Any) -> Optional[str]:
    if not isinstance(raw, Mapping):
        return None
    return _optional_text(raw.get("job_id"))


def _read_city(raw_city: Any, default_country: str) -> tuple[str, str, str]:
    if not isinstance(raw_city, Mapping):
        raise MalformedRequestError(f"City entry must be an object, got {type(raw_city).__name__}")

    name = _optional_text(raw_city.get("name"))
    if not name:
        raise MalformedRequestError("City entry is missing a name")

    postcode = _optional_text(raw_city.get("postcode")) or ""
    country = _optional_text(raw_city.get("country")) or default_country
    return name, postcode, country


def _build(raw: Any, default_country: str) -> BuildResult:
    if not isinstance(raw, Mapping):
        raise MalformedRequestError("Request payload must be an object")

    raw_domain = raw.get("domain")
    if not isinstance(raw_domain, str) or not raw_domain.strip():
        raise MalformedRequestError("Request is missing a domain")

    domain = normalize_domain(raw_domain)
    if not domain:
        raise MalformedRequestError(f"Domain '{raw_domain}' is empty after normalization")

    raw_cities = raw.get("cities")
    if raw_cities is None:
        raw_cities = []
    if not isinstance(raw_cities, (list, tuple)):
        raise MalformedRequestError("cities must be a list")

    now = utcnow()
    job = Job(
        job_id=_caller_job_id(raw) or generate_job_id(),
        domain=domain,
        branche=_optional_text(raw.get("branche")),
        description=_optional_text(raw.get("description"), DESCRIPTION_MAX_LENGTH),
        raw_domain=raw_domain,
        created_at=now,
    )

    if not raw_cities:
        placeholder = CityRecord(
            job_id=job.job_id,
            name="",
            postcode="",
            country="",
            subpage_id=f"{sanitize_token(domain)}_no_city",
            status=CITY_ERROR_NO_CITIES,
            created_at=now,
            updated_at=now,
        )
        logger.warning(f"Job {job.job_id} submitted without cities", extra={"job_id": job.job_id, "domain": domain})
        return BuildResult(job=job, cities=[placeholder])

    cities: List[CityRecord] = []
    seen = set()
    for raw_city in raw_cities:
        name, postcode, country = _read_city(raw_city, default_country)
        subpage_id = build_subpage_id(domain, name, postcode)
        if subpage_id in seen:
            continue
        seen.add(subpage_id)
        cities.append(
            CityRecord(
                job_id=job.job_id,
                name=name,
                postcode=postcode,
                country=country,
                subpage_id=subpage_id,
                status=CITY_PENDING,
                position=len(cities),
                created_at=now,
                updated_at=now,
            )
        )

    return BuildResult(job=job, cities=cities)


def _error_result(raw: Any, error: Exception) -> BuildResult:
    now = utcnow()
    job_id = _caller_job_id(raw) or f"error_{generate_job_id()}"

    job = Job(job_id=job_id, domain="", raw_domain="", created_at=now)
    record = CityRecord(
        job_id=job_id,
        name="",
        postcode="",
        country="",
        subpage_id=f"error_{job_id}",
        status=CITY_ERROR_PROCESSING,
        error_message=str(error) or type(error).__name__,
        created_at=now,
        updated_at=now,
    )
    return BuildResult(job=job, cities=[record], error=record.error_message)


def build_job_request(raw: Any, *, default_country: str = "Germany") -> BuildResult:
    """
    Normalize a raw submission into a Job and its ordered CityRecords.

    Never raises: malformed payloads produce a single error_processing record
    carrying the captured message, an empty city list produces a single
    error_no_cities record.
    """
    try:
        return _build(raw, default_country)
    except Exception as e:
        logger.warning(
            f"Malformed job request: {e}",
            extra={"error": str(e), "exc_type": type(e).__name__},
        )
        return _error_result(raw, e)

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from ..exceptions import SubpageBaseException, ValidationError
from ..jobs.records import CITY_COMPLETED, CITY_ERROR_PROCESSING, CITY_PENDING, CityKey, CityRecord
from ..logger import logger
from ..store.base import JobStore


# Upstream spells "completed" in more than one way.
_STATUS_ALIASES: Dict[str, str] = {
    "completed": CITY_COMPLETED,
    "completeted": CITY_COMPLETED,
    "complete": CITY_COMPLETED,
    "success": CITY_COMPLETED,
    "failed": CITY_ERROR_PROCESSING,
    "error": CITY_ERROR_PROCESSING,
    "error_processing": CITY_ERROR_PROCESSING,
}


@dataclass(frozen=True)
class CityUpdate:
    city_key: Optional[CityKey]
    content: str
    status: str
    error_message: Optional[str] = None


@dataclass
class IngestResult:
    job_id: str
    applied: List[CityRecord] = field(default_factory=list)
    rejected: List[Dict[str, str]] = field(default_factory=list)


def normalize_callback_status(value: Any) -> str:
    if value is None:
        return CITY_COMPLETED
    key = str(value).strip().lower()
    if not key:
        return CITY_COMPLETED
    status = _STATUS_ALIASES.get(key)
    if status is None:
        raise ValidationError(f"Unsupported callback status: {value!r}")
    return status


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _content(value: Any) -> Optional[str]:
    if not isinstance(value, str) or not value.strip():
        return None
    return value


def _city_key(raw_city: Any) -> Optional[CityKey]:
    if raw_city is None:
        return None
    if isinstance(raw_city, str):
        name = raw_city.strip()
        return CityKey(name=name) if name else None
    if isinstance(raw_city, Mapping):
        subpage_id = _text(raw_city.get("subpage_id"))
        name = _text(raw_city.get("name")) or _text(raw_city.get("city_name")) or ""
        if not name and not subpage_id:
            return None
        return CityKey(name=name, postcode=_text(raw_city.get("postcode")), subpage_id=subpage_id)
    raise ValidationError(f"Unsupported city value: {type(raw_city).__name__}")


def _error_message(raw: Mapping, status: str) -> Optional[str]:
    if status != CITY_ERROR_PROCESSING:
        return None
    return _text(raw.get("error")) or _text(raw.get("message")) or "Generation engine reported a failure"


def parse_callback(payload: Any) -> tuple[str, List[CityUpdate]]:
    """
    Validate a callback and turn it into per-city updates.

    Accepts a single-city event {job_id, city?, content, status?, domain?}
    and a multi-city event {job_id, cities: [{name, postcode?, content, status?}]}.
    Raises ValidationError before anything is written.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Callback payload must be an object")

    job_id = _text(payload.get("job_id"))
    raw_cities = payload.get("cities")

    if isinstance(raw_cities, Mapping):
        raw_cities = [raw_cities]

    if isinstance(raw_cities, list) and raw_cities:
        if not job_id:
            raise ValidationError("Missing required field: job_id")
        default_content = _content(payload.get("content"))
        updates: List[CityUpdate] = []
        for raw_city in raw_cities:
            if not isinstance(raw_city, Mapping):
                raise ValidationError("Each city entry must be an object")
            key = _city_key(raw_city)
            if key is None:
                raise ValidationError("City entry is missing a name")
            content = _content(raw_city.get("content")) or _content(raw_city.get("generated_html")) or default_content
            if content is None:
                raise ValidationError(f"Missing content for city '{key.describe()}'")
            status = normalize_callback_status(raw_city.get("status", payload.get("status")))
            updates.append(CityUpdate(key, content, status, _error_message(raw_city, status)))
        return job_id, updates

    content = _content(payload.get("content"))
    if not job_id or content is None:
        raise ValidationError("Missing required fields: job_id or content")

    status = normalize_callback_status(payload.get("status"))
    return job_id, [CityUpdate(_city_key(payload.get("city")), content, status, _error_message(payload, status))]


class CallbackIngester:
    """Applies generation engine callbacks to the JobStore."""

    def __init__(self, store: JobStore) -> None:
        self.store = store

    async def _default_city_key(self, job_id: str) -> CityKey:
        # A callback without a city addresses the job as a whole.
        snapshot = await self.store.get_job(job_id)
        pending = [c for c in snapshot.cities if c.status == CITY_PENDING]
        target = pending[0] if pending else snapshot.first_city()
        return CityKey(name=target.name, postcode=target.postcode, subpage_id=target.subpage_id)

    async def ingest(self, payload: Any) -> IngestResult:
        try:
            job_id, updates = parse_callback(payload)
        except ValidationError as e:
            logger.warning(f"Callback rejected: {e.message}", extra={"error_message": e.message})
            raise

        result = IngestResult(job_id=job_id)
        first_error: Optional[SubpageBaseException] = None

        for update in updates:
            key = update.city_key or await self._default_city_key(job_id)
            try:
                record = await self.store.update_city_content(
                    job_id,
                    key,
                    update.content,
                    update.status,
                    error_message=update.error_message,
                )
            except SubpageBaseException as e:
                logger.warning(
                    f"Callback update rejected for job {job_id}: {e.message}",
                    extra={"job_id": job_id, "city": key.describe(), "error_code": e.code},
                )
                first_error = first_error or e
                result.rejected.append({"city": key.describe(), "error": e.code, "message": e.message})
                continue

            result.applied.append(record)
            logger.info(
                f"Stored result for job {job_id}",
                extra={"job_id": job_id, "subpage_id": record.subpage_id, "status": record.status},
            )

        if not result.applied and first_error is not None:
            raise first_error

        return result

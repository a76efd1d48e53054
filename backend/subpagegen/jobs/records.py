from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import List, Optional


CITY_PENDING = "pending"
CITY_COMPLETED = "completed"
CITY_ERROR_NO_CITIES = "error_no_cities"
CITY_ERROR_PROCESSING = "error_processing"

CITY_ERROR_STATES = frozenset({CITY_ERROR_NO_CITIES, CITY_ERROR_PROCESSING})

# The only states a pending record may move to.
CITY_TERMINAL_UPDATES = frozenset({CITY_COMPLETED, CITY_ERROR_PROCESSING})

DESCRIPTION_MAX_LENGTH = 255


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Job:
    job_id: str
    domain: str
    branche: Optional[str] = None
    description: Optional[str] = None
    raw_domain: str = ""
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CityRecord:
    job_id: str
    name: str
    postcode: str
    country: str
    subpage_id: str
    status: str = CITY_PENDING
    generated_content: Optional[str] = None
    error_message: Optional[str] = None
    position: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def copy(self) -> "CityRecord":
        return replace(self)


@dataclass(frozen=True)
class CityKey:
    """
    Address of one CityRecord inside a job.

    - subpage_id wins when present
    - otherwise name (case-insensitive) plus postcode
    - postcode=None matches by name only, which must then be unambiguous
    """

    name: str = ""
    postcode: Optional[str] = None
    subpage_id: Optional[str] = None

    def describe(self) -> str:
        if self.subpage_id:
            return self.subpage_id
        if self.postcode:
            return f"{self.name} ({self.postcode})"
        return self.name

    def resolve(self, cities: List[CityRecord]) -> List[CityRecord]:
        if self.subpage_id:
            return [c for c in cities if c.subpage_id == self.subpage_id]

        wanted = self.name.strip().casefold()
        matches = [c for c in cities if c.name.strip().casefold() == wanted]
        if self.postcode is not None:
            postcode = self.postcode.strip()
            matches = [c for c in matches if c.postcode.strip() == postcode]
        return matches


@dataclass
class JobSnapshot:
    """A job and its ordered cities as read from a store."""

    job: Job
    cities: List[CityRecord]

    @property
    def job_id(self) -> str:
        return self.job.job_id

    @property
    def status(self) -> str:
        from ..services.job_status import compute_job_status

        return compute_job_status(c.status for c in self.cities)

    @property
    def updated_at(self) -> datetime:
        stamps = [c.updated_at for c in self.cities]
        return max(stamps) if stamps else self.job.created_at

    def first_city(self) -> Optional[CityRecord]:
        return self.cities[0] if self.cities else None

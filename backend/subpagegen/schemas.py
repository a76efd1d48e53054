"""
Pydantic schemas for API responses
"""
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

# ===== Common Schemas =====

class HealthResponse(BaseModel):
    status: str
    service: str

# ===== Job Schemas =====

class CityOut(BaseModel):
    name: str
    postcode: str
    country: str
    subpage_id: str
    status: str
    generated_html: Optional[str] = None
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class JobOut(BaseModel):
    job_id: str
    domain: str
    branche: Optional[str] = None
    description: Optional[str] = None
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    cities: List[CityOut] = []

class CreateJobResponse(BaseModel):
    job_id: str
    status: str
    dispatched: bool
    error: Optional[str] = None
    cities: List[CityOut] = []

class DispatchResponse(BaseModel):
    job_id: str
    dispatched: bool
    accepted_at: datetime

# ===== Callback Schemas =====

class CallbackRejection(BaseModel):
    city: str
    error: str
    message: str

class CallbackResponse(BaseModel):
    success: bool
    message: str
    job_id: str
    applied: List[str] = []
    rejected: List[CallbackRejection] = []

# ===== Status Schemas =====

class JobStatusResponse(BaseModel):
    """Legacy status shape; unknown jobs read as pending."""
    status: str
    message: Optional[str] = None
    content: Optional[str] = None
    city: Optional[str] = None
    domain: Optional[str] = None
    timestamp: Optional[datetime] = None

class JobDataCity(BaseModel):
    name: str
    postcode: str
    country: str
    subpage_id: str
    status: str
    generated_html: Optional[str] = None

class JobData(BaseModel):
    job_id: str
    domain: str
    status: str
    content: Optional[str] = None
    cities: List[JobDataCity] = []
    # Singular view of cities[0], kept for older clients.
    city: Optional[str] = None

class JobDataResponse(BaseModel):
    success: bool
    data: Optional[JobData] = None
    status: Optional[str] = None
    message: Optional[str] = None

# ===== Export Schemas =====

class ExportQueuedResponse(BaseModel):
    job_id: str
    queued: int
    subpage_ids: List[str] = []

class ExportItem(BaseModel):
    subpage_id: str
    filename: str
    url: Optional[str] = None

class ExportListResponse(BaseModel):
    job_id: str
    exports: List[ExportItem] = Field(default_factory=list)

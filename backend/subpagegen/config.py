from typing import Optional
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    DATABASE_URL: str = "postgresql+psycopg://user:password@db/subpages"
    JOB_STORE_BACKEND: str = "memory"

    GENERATION_WEBHOOK_URL: str = "http://localhost:5678/webhook/generate-job"
    DISPATCH_TIMEOUT_SECONDS: float = 60.0
    DEFAULT_COUNTRY: str = "Germany"

    PUBLIC_BASE_URL: str = "http://localhost:8000"
    POLL_INITIAL_DELAY_SECONDS: float = 3.0
    POLL_INTERVAL_SECONDS: float = 5.0
    POLL_MAX_ATTEMPTS: int = 60
    POLL_SETTLE_DELAY_SECONDS: float = 7.0

    AWS_ENDPOINT_URL: Optional[str] = None
    AWS_ACCESS_KEY_ID: Optional[str] = None
    AWS_SECRET_ACCESS_KEY: Optional[str] = None
    AWS_REGION_NAME: str = "eu-central-1"
    S3_BUCKET_NAME: str = "subpages"

    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/0"

    class Config:
        env_file = ".env"

settings = Settings()

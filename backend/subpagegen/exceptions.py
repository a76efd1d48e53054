from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
import traceback
from .logger import logger


class SubpageBaseException(Exception):
    """Base exception for the subpage generation service"""
    def __init__(self, message: str, code: str = "INTERNAL_ERROR", status_code: int = 500):
        self.message = message
        self.code = code
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(SubpageBaseException):
    """Raised when a required field is absent or malformed"""
    def __init__(self, message: str = "Invalid payload"):
        super().__init__(message, "VALIDATION_ERROR", 400)


class NotFoundError(SubpageBaseException):
    """Raised when an operation addresses an unknown job or city"""
    def __init__(self, message: str, code: str = "NOT_FOUND"):
        super().__init__(message, code, 404)


class JobNotFoundError(NotFoundError):
    """Raised when job is not found"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", "JOB_NOT_FOUND")


class CityNotFoundError(NotFoundError):
    """Raised when a city key does not resolve to exactly one record of a job"""
    def __init__(self, job_id: str, city: str):
        self.job_id = job_id
        super().__init__(f"City '{city}' not found in job {job_id}", "CITY_NOT_FOUND")


class DuplicateJobError(SubpageBaseException):
    """Raised when a job id is created twice"""
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} already exists", "DUPLICATE_JOB", 409)


class InvalidCityTransitionError(SubpageBaseException):
    """Raised when a city record is not in a state that allows the update"""
    def __init__(self, job_id: str, subpage_id: str, current_state: str, requested_state: str):
        super().__init__(
            f"City {subpage_id} of job {job_id} is in state '{current_state}', cannot move to '{requested_state}'",
            "INVALID_CITY_TRANSITION",
            409,
        )


class TransientDispatchError(SubpageBaseException):
    """Raised when the generation engine could not be reached or rejected the job"""
    def __init__(self, message: str = "Failed to dispatch job to generation engine"):
        super().__init__(message, "TRANSIENT_DISPATCH_ERROR", 502)


class S3StorageError(SubpageBaseException):
    """Raised when S3 operations fail"""
    def __init__(self, message: str = "S3 storage operation failed"):
        super().__init__(message, "S3_STORAGE_ERROR", 502)


async def subpage_exception_handler(request: Request, exc: SubpageBaseException):
    """Handle custom application exceptions"""
    logger.error(
        f"Application exception: {exc.code} - {exc.message}",
        extra={
            "error_code": exc.code,
            "error_message": exc.message,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.code,
            "message": exc.message,
            "status_code": exc.status_code,
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions"""
    logger.warning(
        f"HTTP {exc.status_code}: {exc.detail}",
        extra={
            "http_status_code": exc.status_code,
            "http_detail": exc.detail,
            "request_path": request.url.path,
        }
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": "HTTP_ERROR",
            "message": exc.detail,
            "status_code": exc.status_code,
        }
    )


async def generic_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.error(
        f"Unhandled exception: {type(exc).__name__} - {str(exc)}",
        extra={
            "exc_type": type(exc).__name__,
            "exc_message": str(exc),
            "request_path": request.url.path,
            "exc_traceback": traceback.format_exc(),
        }
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_SERVER_ERROR",
            "message": "An internal error occurred. Please try again later.",
        }
    )

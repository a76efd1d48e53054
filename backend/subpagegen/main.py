from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
import time
from .config import settings
from .logger import logger
from .schemas import HealthResponse
from .store.factory import get_job_store
from .routes import callbacks, exports, jobs, status
from .exceptions import (
    SubpageBaseException,
    subpage_exception_handler,
    http_exception_handler,
    generic_exception_handler,
)

app = FastAPI(
    title="Subpage Generator API",
    version="1.0.0",
    description="API for generating local city subpages and converting them into TSX components"
)

app.add_exception_handler(SubpageBaseException, subpage_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
@app.middleware("http")
async def log_requests(request: Request, call_next):
    start_time = time.time()

    logger.info(
        f"Request: {request.method} {request.url.path}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
        }
    )

    response = await call_next(request)

    duration = time.time() - start_time
    logger.info(
        f"Response: {response.status_code}",
        extra={
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        }
    )

    return response

app.include_router(jobs.router)
app.include_router(callbacks.router)
app.include_router(status.router)
app.include_router(exports.router)

@app.on_event("startup")
async def startup():
    logger.info("Starting Subpage Generator API", extra={"job_store": settings.JOB_STORE_BACKEND})
    store = get_job_store()
    create_schema = getattr(store, "create_schema", None)
    if create_schema is None:
        return
    try:
        await create_schema()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

@app.on_event("shutdown")
async def shutdown():
    logger.info("Shutting down Subpage Generator API")

@app.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint"""
    return {"status": "ok", "service": "subpagegen-backend"}

"""Main FastAPI application"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import text
from datetime import datetime
from pathlib import Path
import logging
import traceback
import time
import uuid

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi.responses import Response

from codejudge.config import settings
from codejudge.core.database import init_db, SessionLocal
from codejudge.core.exceptions import BaseAPIException, SecurityPolicyError
from codejudge.api.v1 import judge, submissions, problems
from codejudge.services.judge_service import create_judge_service
from codejudge.services.notifier import SubmissionNotifier
from codejudge.services.rate_limiter import InMemoryRateLimiter
from codejudge.services.submission_pipeline import create_submission_pipeline

# Configure logging - ensure log directory exists
_log_dir = Path(settings.get_log_file()).parent
_log_dir.mkdir(parents=True, exist_ok=True)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(settings.get_log_file()),
        logging.StreamHandler()
    ]
)

logger = logging.getLogger(__name__)

REQUEST_COUNT = Counter(
    "codejudge_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)
REQUEST_LATENCY = Histogram(
    "codejudge_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)
JUDGE_TASKS = Counter(
    "codejudge_judge_tasks_total",
    "Synchronous judge tasks by final queue event",
    ["event"],
)
SUBMISSIONS_COMPLETED = Counter(
    "codejudge_submissions_completed_total",
    "Asynchronous submissions by verdict",
    ["verdict"],
)
TASK_QUEUE_DEPTH_GAUGE = Gauge("codejudge_task_queue_depth", "Judge tasks waiting for a sandbox slot")
TASK_QUEUE_RUNNING_GAUGE = Gauge("codejudge_task_queue_running", "Judge tasks currently executing")
QUEUE_DEPTH_GAUGE = Gauge("codejudge_submission_queue_depth", "Number of queued submissions")
WORKER_UP_GAUGE = Gauge("codejudge_worker_up", "Worker liveness (1 running, 0 stopped)")

# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    debug=settings.DEBUG,
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None
)

# GZip compression for large responses
app.add_middleware(GZipMiddleware, minimum_size=500)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Security headers + request timing middleware
@app.middleware("http")
async def add_headers_and_timing(request: Request, call_next):
    """Add security headers and log slow requests"""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    start = time.time()
    response = await call_next(request)
    duration = time.time() - start

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    response.headers["X-Request-ID"] = request_id

    REQUEST_COUNT.labels(request.method, request.url.path, str(response.status_code)).inc()
    REQUEST_LATENCY.labels(request.method, request.url.path).observe(duration)

    # Threshold is the sandbox wall clock budget.
    if duration > settings.MAX_TOTAL_TIME / 1000:
        logger.warning(
            "Slow request: %s %s took %.2fs request_id=%s",
            request.method,
            request.url.path,
            duration,
            request_id,
        )

    return response


# Exception handlers
@app.exception_handler(BaseAPIException)
async def api_exception_handler(request: Request, exc: BaseAPIException):
    """Handle custom API exceptions"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        f"API Exception: {exc.message}",
        extra={
            "status_code": exc.status_code,
            "details": exc.details,
            "path": request.url.path,
            "method": request.method
        }
    )

    details = exc.details
    if isinstance(exc, SecurityPolicyError):
        details = {"reason": "security_policy"}

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "details": details,
            "path": request.url.path,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    logger.warning(
        f"Validation error: {errors}",
        extra={"path": request.url.path, "method": request.method}
    )

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "error": "Validation failed",
            "details": {"errors": errors},
            "path": request.url.path,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """Handle database errors"""
    logger.error(
        f"Database error: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "A database error occurred. Please try again later.",
            "path": request.url.path,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle all other exceptions"""
    logger.critical(
        f"Unhandled exception: {str(exc)}",
        extra={
            "path": request.url.path,
            "method": request.method,
            "traceback": traceback.format_exc()
        }
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "success": False,
            "error": "An unexpected error occurred.",
            "path": request.url.path,
            "timestamp": datetime.utcnow().isoformat()
        }
    )


def _count_task_event(event: str):
    def _record(payload: dict) -> None:
        JUDGE_TASKS.labels(event).inc()
    return _record


def _record_submission(record: dict) -> None:
    SUBMISSIONS_COMPLETED.labels(record.get("verdict") or "unknown").inc()


# Startup event
@app.on_event("startup")
async def startup_event():
    """Initialize application on startup"""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    # Initialize database
    try:
        init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        raise

    judge_service = create_judge_service(settings)
    for event in ("task_completed", "task_failed", "task_cancelled", "task_timeout"):
        judge_service.task_queue.subscribe(event, _count_task_event(event))
    judge_service.task_queue.start()

    notifier = SubmissionNotifier()
    notifier.subscribe_all(_record_submission)
    pipeline = create_submission_pipeline(SessionLocal, notifier=notifier, cfg=settings)

    app.state.session_factory = SessionLocal
    app.state.rate_limiter = InMemoryRateLimiter()
    app.state.notifier = notifier
    app.state.judge_service = judge_service
    app.state.submission_pipeline = pipeline

    if settings.RUN_EMBEDDED_WORKER:
        pipeline.start()
        pipeline.recover_pending()
        WORKER_UP_GAUGE.set(1)


# Shutdown event
@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup on shutdown"""
    pipeline = getattr(app.state, "submission_pipeline", None)
    if pipeline is not None:
        pipeline.stop()
    judge_service = getattr(app.state, "judge_service", None)
    if judge_service is not None:
        judge_service.task_queue.shutdown(timeout=settings.QUEUE_SHUTDOWN_TIMEOUT_SECONDS)
    WORKER_UP_GAUGE.set(0)
    logger.info(f"Shutting down {settings.APP_NAME}")


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint"""
    db_ok = True
    db_error = None
    db = SessionLocal()
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        db_ok = False
        db_error = str(exc)
    finally:
        db.close()

    worker_status = app.state.submission_pipeline.status()
    queue_stats = app.state.judge_service.task_queue.stats()
    QUEUE_DEPTH_GAUGE.set(worker_status["queue_depth"])
    TASK_QUEUE_DEPTH_GAUGE.set(queue_stats["queue_length"])
    TASK_QUEUE_RUNNING_GAUGE.set(queue_stats["running"])
    WORKER_UP_GAUGE.set(1 if worker_status["running"] else 0)

    return {
        "status": "healthy" if db_ok and queue_stats["accepting"] else "degraded",
        "version": settings.APP_VERSION,
        "timestamp": datetime.utcnow().isoformat(),
        "readiness": {
            "database": {"ok": db_ok, "error": db_error},
            "worker": worker_status,
            "queue": queue_stats,
        },
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/api/docs" if settings.DEBUG else "disabled"
    }


# Include routers
app.include_router(judge.router, prefix="/api/v1/judge", tags=["Judge"])
app.include_router(submissions.router, prefix="/api/v1/submissions", tags=["Submissions"])
app.include_router(problems.router, prefix="/api/v1/problems", tags=["Problems"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "codejudge.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=1 if settings.DEBUG else settings.WORKERS
    )

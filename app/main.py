# app/main.py
import logging
import os
import time
import uuid

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.routes import router
from app.config import LLM_MODEL, LOG_FILE, LOG_LEVEL, STORAGE_DIR
from app.llm.client import LLMClientError
from app.observability.logger import bind_request_id, reset_request_id, setup_logging
from app.observability.metrics import metrics_tracker
from app.observability.posthog_client import posthog_client

# Logging before anything else logs
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE or None)
logger = logging.getLogger(__name__)

VERSION = "1.0.0"

ENDPOINTS = (
    ("POST", "/upload", "Upload a PDF"),
    ("GET", "/documents", "List documents"),
    ("POST", "/ask", "Chat with a document"),
    ("POST", "/summarize", "Summarize a document"),
    ("POST", "/compare", "Compare two documents"),
    ("GET", "/health", "Health check"),
    ("GET", "/metrics", "System metrics"),
)

app = FastAPI(
    title="PDF Chat API",
    description="Chat with, summarize and compare PDFs over TF-IDF retrieval",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """
    Request id, access log and request metrics.

    The id is bound to the logging context, so every record emitted while
    serving the request carries it, and is echoed in X-Request-ID.
    """

    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    request.state.request_id = request_id
    token = bind_request_id(request_id)

    started = time.time()

    try:

        response = await call_next(request)

    except Exception:

        metrics_tracker.record_failure()
        logger.exception(
            "request_failed",
            extra={"method": request.method, "path": request.url.path},
        )
        raise

    finally:

        reset_request_id(token)

    latency = time.time() - started

    if response.status_code >= 500:
        metrics_tracker.record_failure()
    else:
        metrics_tracker.record_success(latency)

    response.headers["X-Request-ID"] = request_id

    logger.info(
        "request_completed",
        extra={
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "latency_seconds": round(latency, 3),
        },
    )

    return response


app.include_router(router)


@app.on_event("startup")
async def startup_event():

    logger.info(
        "application_startup",
        extra={"version": VERSION, "model": LLM_MODEL, "storage_dir": STORAGE_DIR},
    )

    if not (os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")):
        logger.warning(
            "missing_api_key",
            extra={"warning_detail": "Set LLM_API_KEY or OPENAI_API_KEY; chat, compare and summarize need it."},
        )

    banner = "=" * 50
    print(banner)
    print(f"PDF Chat API {VERSION}")
    print(banner)
    for method, path, description in ENDPOINTS:
        print(f"  {method:<5}{path:<12} - {description}")
    print(banner)
    print(f"Logs: {LOG_FILE or 'stdout'} (JSON)")
    print(banner)


@app.on_event("shutdown")
async def shutdown_event():
    posthog_client.shutdown()
    logger.info("application_shutdown")


def _error_response(request: Request, status_code: int, detail: str, exc: Exception) -> JSONResponse:

    return JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "request_id": getattr(request.state, "request_id", "unknown"),
            "error_type": type(exc).__name__,
        },
    )


@app.exception_handler(LLMClientError)
async def llm_error_handler(request: Request, exc: LLMClientError):

    logger.error(
        "llm_provider_error",
        extra={
            "path": request.url.path,
            "error": str(exc),
            "provider_status_code": exc.status_code,
        },
    )

    return _error_response(
        request,
        status.HTTP_502_BAD_GATEWAY,
        "The language model provider failed. Please try again.",
        exc,
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):

    logger.error(
        "unhandled_exception",
        extra={
            "path": request.url.path,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=exc,
    )

    posthog_client.track_error(
        distinct_id=getattr(request.state, "request_id", "unknown"),
        error_type=type(exc).__name__,
        error_message=str(exc),
        endpoint=request.url.path,
    )

    return _error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "An internal error occurred. Please try again.",
        exc,
    )


@app.get("/")
async def root():

    return {
        "message": "PDF Chat API",
        "version": VERSION,
        "docs": "/docs",
        "endpoints": [path for _, path, _ in ENDPOINTS],
    }

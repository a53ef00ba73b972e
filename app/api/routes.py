from fastapi import APIRouter, Depends, UploadFile, File, HTTPException, Request
import logging
import os

from functools import lru_cache

from app.config import (
    ALLOWED_FILE_EXTENSIONS,
    MAX_FILE_SIZE_MB,
    MAX_PAGES,
    STORAGE_DIR,
)

from app.observability.logger import (
    log_request_start,
    log_request_complete,
    log_request_error,
)
from app.observability.metrics import metrics_tracker
from app.observability.posthog_client import posthog_client

from app.models import (
    AskRequest,
    AskResponse,
    CompareRequest,
    CompareResponse,
    SummarizeRequest,
    SummarizeResponse,
    UploadResponse,
    ListDocumentsResponse,
    DocumentInfo,
    HealthResponse,
)

from app.llm.client import LLMClient, LLMClientError
from app.memory.chunker import chunk_pages
from app.memory.loader import (
    extract_pages,
    count_non_empty_pages,
    is_probably_scanned,
)
from app.memory.store import (
    Document,
    DocumentStore,
    IndexedDocument,
    JsonDocumentRepository,
    stable_doc_id,
    utc_now_iso,
)
from app.workflow.compare import compare_documents
from app.workflow.document_qa import answer_question
from app.workflow.summarizer import get_or_create_summary


# ============================================================
# LOGGER
# ============================================================

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================
# DEPENDENCIES (ONE INSTANCE PER PROCESS)
# ============================================================

@lru_cache()
def get_document_store() -> DocumentStore:
    return DocumentStore(JsonDocumentRepository(STORAGE_DIR))


@lru_cache()
def get_llm_client() -> LLMClient:
    return LLMClient()


def get_extractor():
    return extract_pages


# ============================================================
# HELPERS
# ============================================================

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")


def validate_file_size(content: bytes):

    size_mb = len(content) / (1024 * 1024)

    if size_mb > MAX_FILE_SIZE_MB:
        raise HTTPException(
            status_code=413,
            detail=f"File too large: {size_mb:.2f}MB (max {MAX_FILE_SIZE_MB}MB)",
        )


def validate_file_type(filename: str):

    extension = os.path.splitext(filename or "")[1].lower()

    if extension not in ALLOWED_FILE_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {extension or 'none'}. Only PDF files are accepted.",
        )


def require_document(store: DocumentStore, document_id: str) -> IndexedDocument:

    entry = store.get(document_id)

    if entry is None:
        raise HTTPException(
            status_code=404,
            detail=f"Document not found: {document_id}",
        )

    return entry


def _track_failure(request: Request, endpoint: str, error: Exception):

    if isinstance(error, HTTPException) and error.status_code < 500:
        return

    log_request_error(logger, endpoint, error)

    # anything else reaches the global handler, which reports it
    if not isinstance(error, LLMClientError):
        return

    posthog_client.track_error(
        distinct_id=_request_id(request),
        error_type=type(error).__name__,
        error_message=str(error),
        endpoint=endpoint,
    )


# ============================================================
# HEALTH
# ============================================================

@router.get("/health", response_model=HealthResponse)
def health_check(store: DocumentStore = Depends(get_document_store)):

    stats = store.get_stats()

    return HealthResponse(
        status="healthy",
        cached_documents=stats["cached_documents"],
        cached_chunks=stats["cached_chunks"],
    )


# ============================================================
# UPLOAD DOCUMENT
# ============================================================

@router.post("/upload", response_model=UploadResponse)
async def upload_document(
    request: Request,
    file: UploadFile = File(None),
    store: DocumentStore = Depends(get_document_store),
    extractor=Depends(get_extractor),
):

    if not file:

        raise HTTPException(
            status_code=400,
            detail="Provide a PDF file",
        )

    validate_file_type(file.filename)

    file_bytes = await file.read()

    validate_file_size(file_bytes)

    document_id = stable_doc_id(file_bytes)

    started = log_request_start(logger, "upload", doc_id=document_id)

    try:

        extraction = extractor(file_bytes, max_pages=MAX_PAGES)

    except Exception as e:

        logger.warning(
            "PDF extraction failed",
            extra={"doc_id": document_id, "error": str(e)},
        )

        raise HTTPException(
            status_code=400,
            detail="Could not read PDF file",
        )

    try:

        pages = extraction.pages

        chunks = chunk_pages(pages, document_id)

        document = Document(
            id=document_id,
            name=file.filename,
            created_at=utc_now_iso(),
            num_pages=extraction.total_page_count,
            pages=pages,
            chunks=chunks,
            scanned_likely=is_probably_scanned(pages),
            total_extracted_chars=sum(len(p.text) for p in pages),
            non_empty_pages=count_non_empty_pages(pages),
        )

        store.upsert(document)

        metrics_tracker.increment("documents_uploaded")

        latency = log_request_complete(
            logger,
            "upload",
            started,
            doc_id=document_id,
            chunks=len(chunks),
            scanned_likely=document.scanned_likely,
        )

        posthog_client.track_document_upload(
            distinct_id=_request_id(request),
            document_id=document_id,
            filename=file.filename,
            chunks=len(chunks),
            scanned_likely=document.scanned_likely,
            latency=latency,
        )

        return UploadResponse(
            document_id=document_id,
            filename=file.filename,
            num_pages=document.num_pages,
            chunks_created=len(chunks),
            scanned_likely=document.scanned_likely,
            total_extracted_chars=document.total_extracted_chars,
            non_empty_pages=document.non_empty_pages,
        )

    except Exception as e:

        _track_failure(request, "upload", e)

        raise


# ============================================================
# LIST DOCUMENTS
# ============================================================

@router.get("/documents", response_model=ListDocumentsResponse)
def list_documents(store: DocumentStore = Depends(get_document_store)):

    documents = [
        DocumentInfo(
            document_id=document.id,
            filename=document.name,
            created_at=document.created_at or None,
            num_pages=document.num_pages,
            chunks_count=len(document.chunks),
            scanned_likely=document.scanned_likely,
            total_extracted_chars=document.total_extracted_chars,
            non_empty_pages=document.non_empty_pages,
            has_summary=bool(document.summary),
        )
        for document in store.list()
    ]

    return ListDocumentsResponse(
        documents=documents,
        total_documents=len(documents),
        total_chunks=sum(d.chunks_count for d in documents),
    )


# ============================================================
# ASK QUESTION
# ============================================================

@router.post("/ask", response_model=AskResponse)
def ask_question(
    payload: AskRequest,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    llm_client=Depends(get_llm_client),
):

    entry = require_document(store, payload.document_id)

    started = log_request_start(logger, "ask", doc_id=entry.id)

    try:

        result = answer_question(
            question=payload.question,
            entry=entry,
            llm_client=llm_client,
            store=store,
            messages=[{"role": m.role, "content": m.content} for m in payload.messages],
        )

        if result["kind"] == "answer":
            metrics_tracker.increment("questions_answered")

            posthog_client.track_retrieval(
                distinct_id=_request_id(request),
                document_id=entry.id,
                chunks_retrieved=len(result["sources"]),
                top_score=result["sources"][0]["score"] if result["sources"] else None,
            )

        elif result["kind"] == "summary":
            metrics_tracker.increment("summaries_generated")

        elif result["kind"] == "summary_cached":
            metrics_tracker.increment("summary_cache_hits")

        if result["retried"]:
            metrics_tracker.increment("oversize_retries")

        latency = log_request_complete(
            logger,
            "ask",
            started,
            doc_id=entry.id,
            kind=result["kind"],
            retried=result["retried"],
        )

        posthog_client.track_question(
            distinct_id=_request_id(request),
            document_id=entry.id,
            question=payload.question,
            kind=result["kind"],
            sources=len(result["sources"]),
            retried=result["retried"],
            latency=latency,
        )

        return AskResponse(**result)

    except Exception as e:

        _track_failure(request, "ask", e)

        raise


# ============================================================
# COMPARE DOCUMENTS
# ============================================================

@router.post("/compare", response_model=CompareResponse)
def compare(
    payload: CompareRequest,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    llm_client=Depends(get_llm_client),
):

    entry_a = require_document(store, payload.document_id_a)
    entry_b = require_document(store, payload.document_id_b)

    started = log_request_start(
        logger,
        "compare",
        doc_id_a=entry_a.id,
        doc_id_b=entry_b.id,
        mode=payload.mode.value,
    )

    try:

        result = compare_documents(
            entry_a,
            entry_b,
            llm_client,
            mode=payload.mode,
            prompt=payload.prompt,
        )

        metrics_tracker.increment("comparisons")

        latency = log_request_complete(
            logger,
            "compare",
            started,
            mode=result["mode"],
            topics=len(result["structured"]["topics"]),
        )

        posthog_client.track_comparison(
            distinct_id=_request_id(request),
            document_id_a=entry_a.id,
            document_id_b=entry_b.id,
            mode=result["mode"],
            topics=len(result["structured"]["topics"]),
            latency=latency,
        )

        return CompareResponse(**result)

    except Exception as e:

        _track_failure(request, "compare", e)

        raise


# ============================================================
# SUMMARIZE DOCUMENT
# ============================================================

@router.post("/summarize", response_model=SummarizeResponse)
def summarize(
    payload: SummarizeRequest,
    request: Request,
    store: DocumentStore = Depends(get_document_store),
    llm_client=Depends(get_llm_client),
):

    entry = require_document(store, payload.document_id)

    started = log_request_start(logger, "summarize", doc_id=entry.id)

    try:

        result = get_or_create_summary(
            store,
            entry,
            llm_client,
            question=payload.question,
        )

        if result["cached"]:
            metrics_tracker.increment("summary_cache_hits")
        elif result["sources"]:
            metrics_tracker.increment("summaries_generated")

        if result.get("map_cache_hits"):
            metrics_tracker.increment("map_cache_hits", result["map_cache_hits"])

        latency = log_request_complete(
            logger,
            "summarize",
            started,
            doc_id=entry.id,
            cached=result["cached"],
        )

        posthog_client.track_summary(
            distinct_id=_request_id(request),
            document_id=entry.id,
            cached=result["cached"],
            sources=len(result["sources"]),
            latency=latency,
        )

        return SummarizeResponse(
            summary=result["summary"],
            document_id=entry.id,
            sources=result["sources"],
            cached=result["cached"],
        )

    except Exception as e:

        _track_failure(request, "summarize", e)

        raise


# ============================================================
# METRICS ENDPOINT
# ============================================================

@router.get("/metrics")
def get_metrics():

    return metrics_tracker.get_metrics()

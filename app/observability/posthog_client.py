# app/observability/posthog_client.py

"""
Product analytics over PostHog.

Architecture contract:
- complements logging, never replaces it
- a no-op unless POSTHOG_API_KEY is set
- analytics failures are logged and swallowed; they never fail a request
"""

import logging
import os
from enum import Enum
from typing import Optional

from posthog import Posthog


logger = logging.getLogger(__name__)

DEFAULT_HOST = "https://app.posthog.com"


class AnalyticsEvent(str, Enum):
    DOCUMENT_UPLOADED = "document_uploaded"
    QUESTION_ASKED = "question_asked"
    RETRIEVAL_PERFORMED = "retrieval_performed"
    SUMMARY_REQUESTED = "summary_requested"
    DOCUMENTS_COMPARED = "documents_compared"
    SYSTEM_ERROR = "system_error"


class PostHogClient:

    def __init__(self, api_key: Optional[str] = None, host: Optional[str] = None):

        self._client: Optional[Posthog] = None

        api_key = api_key or os.getenv("POSTHOG_API_KEY")
        host = host or os.getenv("POSTHOG_HOST", DEFAULT_HOST)

        if not api_key:
            logger.info("Analytics disabled (no POSTHOG_API_KEY)")
            return

        try:
            self._client = Posthog(api_key, host=host, timeout=5, flush_interval=1)
        except Exception as e:
            logger.error("Analytics client could not start", extra={"error": str(e)})
            return

        logger.info("Analytics enabled", extra={"posthog_host": host})

    @property
    def enabled(self) -> bool:
        return self._client is not None

    def capture(self, distinct_id: str, event: AnalyticsEvent, **properties):

        if self._client is None:
            return

        try:
            self._client.capture(
                distinct_id=distinct_id,
                event=AnalyticsEvent(event).value,
                properties=properties,
            )
        except Exception as e:
            logger.warning(
                "Analytics event dropped",
                extra={"event": str(event), "error": str(e)},
            )

    def shutdown(self):
        """Flush queued events; called once when the app stops."""

        if self._client is None:
            return

        try:
            self._client.shutdown()
        except Exception as e:
            logger.warning("Analytics flush failed", extra={"error": str(e)})

    # ==========================================================
    # DOMAIN EVENTS
    # ==========================================================

    def track_document_upload(self, distinct_id, document_id, filename, chunks, scanned_likely, latency):
        self.capture(
            distinct_id,
            AnalyticsEvent.DOCUMENT_UPLOADED,
            document_id=document_id,
            filename=filename,
            chunks=chunks,
            scanned_likely=scanned_likely,
            latency_seconds=latency,
        )

    def track_question(self, distinct_id, document_id, question, kind, sources, retried, latency):
        # question text stays out of analytics
        self.capture(
            distinct_id,
            AnalyticsEvent.QUESTION_ASKED,
            document_id=document_id,
            question_chars=len(question),
            kind=kind,
            sources=sources,
            retried=retried,
            latency_seconds=latency,
        )

    def track_retrieval(self, distinct_id, document_id, chunks_retrieved, top_score):
        self.capture(
            distinct_id,
            AnalyticsEvent.RETRIEVAL_PERFORMED,
            document_id=document_id,
            chunks_retrieved=chunks_retrieved,
            top_score=top_score,
        )

    def track_summary(self, distinct_id, document_id, cached, sources, latency):
        self.capture(
            distinct_id,
            AnalyticsEvent.SUMMARY_REQUESTED,
            document_id=document_id,
            cached=cached,
            sources=sources,
            latency_seconds=latency,
        )

    def track_comparison(self, distinct_id, document_id_a, document_id_b, mode, topics, latency):
        self.capture(
            distinct_id,
            AnalyticsEvent.DOCUMENTS_COMPARED,
            document_id_a=document_id_a,
            document_id_b=document_id_b,
            mode=mode,
            topics=topics,
            latency_seconds=latency,
        )

    def track_error(self, distinct_id, error_type, error_message, endpoint):
        self.capture(
            distinct_id,
            AnalyticsEvent.SYSTEM_ERROR,
            error_type=error_type,
            error_message=error_message[:500],
            endpoint=endpoint,
        )


posthog_client = PostHogClient()

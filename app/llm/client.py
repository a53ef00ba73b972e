# app/llm/client.py

import logging
import os
import time
from typing import Dict, List, Optional, Sequence

from openai import OpenAI

from app.observability.metrics import metrics_tracker
from app.config import (
    LLM_MODEL,
    LLM_BASE_URL,
    LLM_TEMPERATURE,
    LLM_MAX_TOKENS,
)

logger = logging.getLogger(__name__)


class LLMClientError(RuntimeError):
    """Any failure of the generation provider (quota, size, availability)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class LLMClient:
    """
    Client for an OpenAI-compatible chat completions API.

    Used as a remote function: system prompt + message history in,
    text out. Every provider failure surfaces as LLMClientError.
    """

    def __init__(
        self,
        model: str = LLM_MODEL,
        api_key: Optional[str] = None,
        base_url: Optional[str] = LLM_BASE_URL,
    ):
        """
        Initialize the client.

        Args:
            model: Chat model name
            api_key: Defaults to LLM_API_KEY, then OPENAI_API_KEY
            base_url: Optional OpenAI-compatible endpoint
        """
        api_key = api_key or os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ValueError(
                "No API key set. Provide LLM_API_KEY or OPENAI_API_KEY "
                "in the environment before running the application."
            )

        self.client = OpenAI(api_key=api_key, base_url=base_url)
        self.model = model

    def generate(
        self,
        system_prompt: str,
        messages: Sequence[Dict[str, str]],
        max_tokens: int = LLM_MAX_TOKENS,
        temperature: float = LLM_TEMPERATURE,
    ) -> str:
        """
        Generate a reply.

        Args:
            system_prompt: System instructions
            messages: Prior turns, each {"role": ..., "content": ...}
            max_tokens: Output cap

        Returns:
            Generated text ("" if the provider returned no content)

        Raises:
            LLMClientError: If the API call fails
        """
        payload: List[Dict[str, str]] = [{"role": "system", "content": system_prompt}]
        payload.extend(
            {"role": m["role"], "content": m["content"]} for m in messages
        )

        start = time.time()

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=payload,
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except Exception as e:
            logger.warning(
                "LLM call failed",
                extra={
                    "model": self.model,
                    "error": str(e),
                    "status_code": getattr(e, "status_code", None),
                },
            )
            raise LLMClientError(
                f"LLM API call failed: {e}",
                status_code=getattr(e, "status_code", None),
            ) from e

        metrics_tracker.increment("generation_calls")

        logger.info(
            "LLM call completed",
            extra={
                "model": self.model,
                "messages": len(payload),
                "max_tokens": max_tokens,
                "latency_seconds": round(time.time() - start, 3),
            },
        )

        if not response.choices:
            return ""

        return response.choices[0].message.content or ""

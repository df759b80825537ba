"""
Risk Engine - Sentiment Adapter.

============================================================
PURPOSE
============================================================
Capability interface for turning free text into a polarity
score in [-1, 1], plus an HTTP implementation that calls an
external sentiment service.

The scoring core only sees the abstract interface, so the
model behind it can be swapped without touching the engine.

============================================================
CONTRACT
============================================================
    analyze(text) -> SentimentResult(polarity, confidence)

- Must complete within a bounded timeout
- Raises UpstreamTimeoutError on expiry
- Raises UpstreamError on any other failure
- The Normalizer recovers from both with the neutral default

============================================================
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .config import SentimentConfig
from .types import UpstreamError, UpstreamTimeoutError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SentimentResult:
    """Polarity in [-1, 1] and the service's own confidence in [0, 1]."""

    polarity: float
    confidence: Optional[float] = None


class SentimentAdapter(ABC):
    """
    Abstract base class for sentiment services.

    Subclasses implement analyze(); close() releases resources.
    """

    name: str = "sentiment"

    @abstractmethod
    async def analyze(self, text: str) -> SentimentResult:
        """Return the polarity of text."""
        pass

    async def close(self) -> None:
        """Cleanup resources. Override if needed."""
        pass


class HttpSentimentAdapter(SentimentAdapter):
    """
    Sentiment adapter backed by an HTTP service.

    ============================================================
    WIRE FORMAT
    ============================================================
    POST {base_url}/sentiment   {"text": "..."}
    200                         {"polarity": -0.4, "confidence": 0.8}

    ============================================================
    BACKPRESSURE
    ============================================================
    At most max_concurrent_requests calls are in flight; further
    callers queue on a semaphore instead of fanning out.

    ============================================================
    """

    name = "http"

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 2.0,
        max_retries: int = 1,
        max_concurrent_requests: int = 4,
        retry_delay_seconds: float = 0.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self._semaphore = asyncio.Semaphore(max_concurrent_requests)
        self._session: Optional[aiohttp.ClientSession] = None

    @classmethod
    def from_config(cls, config: SentimentConfig) -> "HttpSentimentAdapter":
        if not config.service_url:
            raise ValueError("SentimentConfig.service_url is required for the HTTP adapter")
        return cls(
            base_url=config.service_url,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
            max_concurrent_requests=config.max_concurrent_requests,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def analyze(self, text: str) -> SentimentResult:
        """
        Call the sentiment service, retrying once on timeout or
        transport failure.
        """
        last_error: Optional[Exception] = None

        async with self._semaphore:
            for attempt in range(self.max_retries + 1):
                try:
                    return await self._post(text)
                except asyncio.TimeoutError as e:
                    last_error = e
                    logger.warning(
                        f"[{self.name}] Sentiment request timed out (attempt {attempt + 1})"
                    )
                except aiohttp.ClientError as e:
                    last_error = e
                    logger.warning(
                        f"[{self.name}] Sentiment request failed (attempt {attempt + 1}): {e}"
                    )

                if attempt < self.max_retries and self.retry_delay_seconds > 0:
                    await asyncio.sleep(self.retry_delay_seconds)

        if isinstance(last_error, asyncio.TimeoutError):
            raise UpstreamTimeoutError(
                f"Sentiment service did not respond within {self.timeout_seconds}s",
                details={"attempts": self.max_retries + 1, "url": self.base_url},
            ) from last_error
        raise UpstreamError(
            f"Sentiment service unavailable: {last_error}",
            details={"attempts": self.max_retries + 1, "url": self.base_url},
        ) from last_error

    async def _post(self, text: str) -> SentimentResult:
        session = await self._get_session()
        url = f"{self.base_url}/sentiment"

        async with session.post(url, json={"text": text}) as response:
            if response.status >= 500:
                body = await response.text()
                raise aiohttp.ClientResponseError(
                    response.request_info,
                    response.history,
                    status=response.status,
                    message=body[:200],
                )
            if response.status != 200:
                # 4xx is not worth retrying
                raise UpstreamError(
                    f"Sentiment service returned {response.status}",
                    details={"status_code": response.status, "url": url},
                )
            try:
                payload = await response.json()
            except ValueError as e:
                raise UpstreamError(
                    "Sentiment service returned a malformed JSON body",
                    details={"url": url},
                ) from e

        return self._parse(payload)

    def _parse(self, payload: Dict[str, Any]) -> SentimentResult:
        polarity = payload.get("polarity") if isinstance(payload, dict) else None
        try:
            polarity = float(polarity)
        except (TypeError, ValueError) as e:
            raise UpstreamError(
                "Sentiment service returned a non-numeric polarity",
                details={"payload": str(payload)[:200]},
            ) from e
        if not math.isfinite(polarity):
            raise UpstreamError("Sentiment service returned a non-finite polarity")

        confidence = payload.get("confidence")
        try:
            confidence = float(confidence) if confidence is not None else None
        except (TypeError, ValueError):
            confidence = None

        return SentimentResult(
            polarity=max(-1.0, min(1.0, polarity)),
            confidence=confidence,
        )

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

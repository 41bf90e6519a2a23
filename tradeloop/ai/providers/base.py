"""Base model-client interface, error taxonomy, retry and rate limiting."""

from __future__ import annotations

import asyncio
import functools
import logging
import random
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Sequence

import httpx

from tradeloop.ai.types import Message, ModelReply, ProviderConfig, ProviderName

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Rate Limiting (Token Bucket)
# ---------------------------------------------------------------------------


class TokenBucket:
    """Token bucket rate limiter.

    Allows burst traffic up to the capacity, then refills at a steady rate.
    One bucket is owned by each client instance.
    """

    def __init__(self, rate_per_minute: int, provider: ProviderName) -> None:
        self.capacity = rate_per_minute
        self.tokens = float(rate_per_minute)
        self.rate_per_second = rate_per_minute / 60.0
        self.last_update = time.monotonic()
        self.provider = provider
        self._bucket_lock = asyncio.Lock()

    async def acquire(self, tokens: int = 1) -> None:
        """Acquire tokens, waiting if the bucket is empty."""
        async with self._bucket_lock:
            while True:
                now = time.monotonic()
                elapsed = now - self.last_update

                self.tokens = min(self.capacity, self.tokens + elapsed * self.rate_per_second)
                self.last_update = now

                if self.tokens >= tokens:
                    self.tokens -= tokens
                    logger.debug(
                        "Acquired %d token(s) for %s, %.1f remaining",
                        tokens,
                        self.provider.value,
                        self.tokens,
                    )
                    return

                wait_time = (tokens - self.tokens) / self.rate_per_second
                logger.debug(
                    "Rate limit reached for %s, waiting %.2fs",
                    self.provider.value,
                    wait_time,
                )
                await asyncio.sleep(min(wait_time, 1.0))  # Cap sleep at 1s for responsiveness


# ---------------------------------------------------------------------------
# Error Classification
# ---------------------------------------------------------------------------


class ModelError(Exception):
    """Inference call failed: transport error, timeout or unusable response."""

    def __init__(self, message: str, is_transient: bool = False, status_code: int | None = None):
        super().__init__(message)
        self.is_transient = is_transient
        self.status_code = status_code


class TransientModelError(ModelError):
    """Transient error (retry-able)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, is_transient=True, status_code=status_code)


class PermanentModelError(ModelError):
    """Permanent error (not retry-able)."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message, is_transient=False, status_code=status_code)


def classify_http_error(status_code: int, message: str) -> ModelError:
    """Classify HTTP errors as transient or permanent."""
    if status_code in {429, 502, 503, 504}:
        return TransientModelError(message, status_code)

    if status_code in {400, 401, 403, 404}:
        return PermanentModelError(message, status_code)

    if 500 <= status_code < 600:
        return TransientModelError(message, status_code)

    if 400 <= status_code < 500:
        return PermanentModelError(message, status_code)

    return TransientModelError(message, status_code)


# ---------------------------------------------------------------------------
# Retry Logic
# ---------------------------------------------------------------------------


def calculate_backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: bool = True) -> float:
    """Exponential backoff delay for ``attempt`` (0-based), with 50-150% jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


def with_retry(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 10.0,
    jitter: bool = True,
) -> Callable:
    """Decorator for exponential backoff with jitter on TransientModelError.

    Permanent errors are re-raised immediately; any other exception is
    wrapped into PermanentModelError so callers only ever see ModelError.
    """

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except TransientModelError as e:
                    if attempt >= max_retries:
                        logger.error(
                            "Max retries (%d) exceeded for %s: %s",
                            max_retries,
                            func.__name__,
                            e,
                        )
                        raise

                    delay = calculate_backoff_delay(attempt, base_delay, max_delay, jitter)
                    logger.warning(
                        "Transient error in %s (attempt %d/%d): %s. Retrying in %.2fs",
                        func.__name__,
                        attempt + 1,
                        max_retries + 1,
                        e,
                        delay,
                    )
                    await asyncio.sleep(delay)
                except PermanentModelError as e:
                    logger.error("Permanent error in %s: %s. Not retrying.", func.__name__, e)
                    raise
                except Exception as e:
                    logger.error("Unexpected error in %s: %s", func.__name__, e)
                    raise PermanentModelError(str(e)) from e

            raise PermanentModelError("retry loop exited without a result")

        return wrapper

    return decorator


class ModelClient(ABC):
    """Abstract base class for chat-completion clients with tool calling.

    ``complete`` sends the whole conversation plus the tool catalog and
    returns one assistant reply. Any transport failure, timeout or
    unparsable response surfaces as ``ModelError``.
    """

    def __init__(self, config: ProviderConfig) -> None:
        self.config = config
        self._client: httpx.AsyncClient | None = None
        self._rate_limiter = TokenBucket(config.rate_limit_rpm, config.name)

    @with_retry(max_retries=3, base_delay=1.0, max_delay=10.0, jitter=True)
    async def _make_request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs,
    ) -> dict[str, Any]:
        """Make an HTTP request, classifying failures into ModelError subclasses."""
        await self._rate_limiter.acquire()
        try:
            resp = await client.request(method, url, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            raise classify_http_error(
                e.response.status_code,
                f"{method} {url} failed: {e.response.text[:200]}",
            ) from e
        except httpx.TimeoutException as e:
            raise TransientModelError(f"{method} {url} timed out: {e}") from e
        except httpx.NetworkError as e:
            raise TransientModelError(f"{method} {url} network error: {e}") from e
        except ValueError as e:
            raise PermanentModelError(f"{method} {url} returned invalid JSON: {e}") from e

    # ------------------------------------------------------------------
    # Abstract interface
    # ------------------------------------------------------------------

    @abstractmethod
    async def complete(
        self,
        conversation: Sequence[Message],
        tool_catalog: Sequence[dict[str, Any]],
    ) -> ModelReply:
        """Send the conversation and available tools, return the assistant reply.

        Raises:
            ModelError: On transport failure, timeout or malformed response.
        """

    @abstractmethod
    async def health_check(self) -> bool:
        """Return ``True`` if the provider is reachable and authenticated."""

    async def close(self) -> None:
        """Close any open HTTP connections."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start_timer(self) -> float:
        return time.monotonic()

    def _elapsed_ms(self, start: float) -> float:
        return round((time.monotonic() - start) * 1000, 2)

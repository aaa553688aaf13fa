"""HTTP transport honoring 429 rate limit responses.

The transport sleeps until the deadline announced by the server and sends
the request again, up to ``max_retries`` times. Deadlines come from, in order:

- ``Retry-After`` as seconds, plus up to 100% jitter
- ``Retry-After`` as an HTTP date
- ``X-RateLimit-Reset`` as a unix timestamp in the future
- the configured default wait
"""

import asyncio
import random
import time
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_result, stop_after_attempt

from corpus_agent.core.config import settings
from corpus_agent.core.exceptions import RequestNotReplayableError
from corpus_agent.core.logging import ContextualLogger
from corpus_agent.core.logging import logger as default_logger


def is_rate_limited(response: httpx.Response) -> bool:
    """Check whether a response is a 429."""
    return response.status_code == 429


def wait_time(response: httpx.Response, default_wait: float) -> float:
    """Compute how long to wait before retrying a rate limited request.

    Args:
        response: The 429 response
        default_wait: Seconds to wait when no header is usable

    Returns:
        Seconds to wait, never negative
    """
    retry_after = response.headers.get("Retry-After", "").strip()
    if retry_after:
        if retry_after.isdigit():
            wait = float(retry_after)
            return wait + random.random() * wait
        try:
            date = parsedate_to_datetime(retry_after)
        except (TypeError, ValueError):
            date = None
        if date is not None:
            return max(date.timestamp() - time.time(), 0.0)

    reset = response.headers.get("X-RateLimit-Reset", "").strip()
    if reset:
        try:
            wait = int(reset) - time.time()
        except ValueError:
            wait = 0
        if wait > 0:
            return wait

    return default_wait


class RateLimitTransport(httpx.AsyncBaseTransport):
    """Transport wrapper retrying rate limited requests.

    Only requests whose body is held in memory can be sent twice; any other
    body raises ``RequestNotReplayableError`` when a retry is needed. After the
    last retry the final 429 response is handed back to the caller.
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        max_retries: Optional[int] = None,
        default_wait: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[ContextualLogger] = None,
    ):
        """Initialize the transport.

        Args:
            transport: Wrapped transport, a pooled ``AsyncHTTPTransport`` by default
            max_retries: Retries after the first attempt
            default_wait: Seconds to wait when the response carries no usable header
            sleep: Coroutine used to wait between attempts
            logger: Logger
        """
        self._transport = transport or httpx.AsyncHTTPTransport()
        self.max_retries = (
            settings.CORPUS_RATE_LIMIT_MAX_RETRIES if max_retries is None else max_retries
        )
        self.default_wait = (
            settings.CORPUS_RATE_LIMIT_DEFAULT_WAIT if default_wait is None else default_wait
        )
        self._sleep = sleep
        self.logger = logger or default_logger

    def _wait(self, retry_state) -> float:
        return wait_time(retry_state.outcome.result(), self.default_wait)

    def _before_sleep(self, retry_state) -> None:
        self.logger.warning(
            f"rate limited (429), waiting {retry_state.upcoming_sleep:.2f}s "
            f"(attempt {retry_state.attempt_number + 1}/{self.max_retries + 1})"
        )

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        """Send the request, retrying while the server answers 429."""
        replayable = isinstance(request.stream, httpx.ByteStream)
        attempts = 0

        async def send() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            if attempts > 1 and not replayable:
                raise RequestNotReplayableError(
                    f"cannot retry {request.method} {request.url}: request body is not replayable"
                )

            response = await self._transport.handle_async_request(request)
            if is_rate_limited(response):
                await response.aread()
                await response.aclose()
            return response

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            retry=retry_if_result(is_rate_limited),
            wait=self._wait,
            sleep=self._sleep,
            before_sleep=self._before_sleep,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        return await retrying(send)

    async def aclose(self) -> None:
        """Close the wrapped transport."""
        await self._transport.aclose()

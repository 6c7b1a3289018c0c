"""
API utilities for the CI log migration tool
"""

import logging
import random
import time
from typing import Collection, Optional

import requests

from ci_log_migrator.constants import (
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_RETRY_DELAY,
    HTTP_RATE_LIMIT,
    HTTP_SERVER_ERROR_MAX,
    HTTP_SERVER_ERROR_MIN,
)
from ci_log_migrator.exceptions import TransportError, UnexpectedStatusError
from ci_log_migrator.utils.logging import (
    log_api_request,
    log_api_response,
    log_with_context,
)


# Connection failures, timeouts and connections broken mid-response
RETRYABLE_TRANSPORT_ERRORS = (
    requests.ConnectionError,
    requests.Timeout,
    requests.exceptions.ChunkedEncodingError,
)


def is_retryable_status(status_code: int) -> bool:
    """Throttling and server-side failures are worth another attempt."""
    return (
        status_code == HTTP_RATE_LIMIT
        or HTTP_SERVER_ERROR_MIN <= status_code <= HTTP_SERVER_ERROR_MAX
    )


def backoff_delay(attempt: int, retry_delay: float, max_delay: float) -> float:
    """Exponential backoff with up to one second of random jitter.

    Args:
        attempt: Zero-based index of the attempt that just failed.
        retry_delay: Base delay in seconds.
        max_delay: Upper bound for the returned delay.
    """
    return min(retry_delay * (2**attempt) + random.uniform(0, 1), max_delay)


class ApiClient:
    """Issues authenticated requests against the source API with retries.

    Every call carries the bearer credential and a JSON content type and
    sends no body. Broken or timed-out connections and 429/5xx answers are
    retried. Any other status outside the caller's valid set is terminal, as
    is any other ``requests`` failure, which surfaces as ``TransportError``.
    """

    def __init__(
        self,
        api_key: str,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.max_attempts = max(1, max_attempts)
        self.retry_delay = retry_delay
        self.request_timeout = request_timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    def get(self, url: str, valid_status_codes: Collection[int]) -> bytes:
        return self.execute("GET", url, valid_status_codes)

    def execute(
        self, method: str, url: str, valid_status_codes: Collection[int]
    ) -> bytes:
        """Perform a request and return the raw response body.

        Args:
            method: HTTP method.
            url: Fully built request URL, query string included.
            valid_status_codes: Status codes accepted as success.

        Returns:
            The complete response body.

        Raises:
            TransportError: If every attempt failed at the connection level, or
                the request failed in a way retrying cannot fix.
            UnexpectedStatusError: If the final response has a status code
                outside ``valid_status_codes``.
        """
        last_exception: Optional[Exception] = None

        for attempt in range(self.max_attempts):
            log_api_request(method, url, attempt=attempt + 1)

            try:
                response = self.session.request(
                    method, url, timeout=self.request_timeout
                )
                body = response.content
            except RETRYABLE_TRANSPORT_ERRORS as e:
                last_exception = e
                log_with_context(
                    logging.WARNING,
                    f"Request '{method} {url}' failed: {e}",
                    attempt=attempt + 1,
                )
                self._sleep_before_retry(attempt)
                continue
            except requests.exceptions.RequestException as e:
                raise TransportError(f"Request '{method} {url}' failed: {e}") from e

            log_api_response(response.status_code, url, body)

            if response.status_code in valid_status_codes:
                return body

            error = UnexpectedStatusError(
                response.status_code, method, url, valid_status_codes, body
            )
            if not is_retryable_status(response.status_code):
                raise error

            last_exception = error
            log_with_context(
                logging.WARNING,
                f"Encountered {response.status_code} for '{method} {url}'",
                attempt=attempt + 1,
            )
            self._sleep_before_retry(attempt)

        log_with_context(
            logging.ERROR,
            f"Max attempts ({self.max_attempts}) reached for '{method} {url}'. "
            f"Last error: {last_exception}",
        )
        if isinstance(last_exception, UnexpectedStatusError):
            raise last_exception
        raise TransportError(
            f"Request '{method} {url}' failed after {self.max_attempts} attempts: "
            f"{last_exception}"
        ) from last_exception

    def _sleep_before_retry(self, attempt: int) -> None:
        if attempt >= self.max_attempts - 1:
            return
        sleep_time = backoff_delay(attempt, self.retry_delay, self.request_timeout)
        log_with_context(logging.INFO, f"Retrying in {sleep_time:.1f} seconds...")
        time.sleep(sleep_time)

    def close(self) -> None:
        self.session.close()

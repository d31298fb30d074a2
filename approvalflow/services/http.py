"""Shared HTTP retry logic for collaborator clients."""

import logging
import time
from typing import Callable, Type

import httpx

from approvalflow.core.errors import IntegrationError

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = {429, 502, 503, 504}


def get_with_retries(
    client: httpx.Client,
    url: str,
    *,
    max_retries: int,
    backoff_seconds: float,
    error_cls: Type[IntegrationError],
    sleep: Callable[[float], None] = time.sleep,
) -> httpx.Response:
    """
    GET a URL, retrying transport errors and retryable statuses.

    The delay doubles after each failed attempt. Successful and 404
    responses are returned to the caller; other error statuses raise.

    Raises:
        error_cls: once ``max_retries`` retries have been exhausted, or on
            a non-retryable error status
    """
    attempt = 0
    while True:
        try:
            response = client.get(url)
        except httpx.TransportError as e:
            failure = f"{type(e).__name__}: {e}"
        else:
            if response.status_code not in RETRYABLE_STATUS_CODES:
                if response.status_code >= 400 and response.status_code != 404:
                    raise error_cls(f"GET {url} failed with status {response.status_code}", url=url)
                return response
            failure = f"status {response.status_code}"

        if attempt >= max_retries:
            logger.error(f"GET {url} failed after {attempt + 1} attempts: {failure}")
            raise error_cls(f"GET {url} failed after {attempt + 1} attempts: {failure}", url=url)

        delay = backoff_seconds * (2 ** attempt)
        logger.warning(f"GET {url} failed ({failure}); retrying in {delay:.2f}s")
        sleep(delay)
        attempt += 1

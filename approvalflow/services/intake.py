"""Request Intake service clients.

Request data is a flat key/value dictionary. Keys are passed through
untouched: routing rules match them literally.
"""

import logging
from typing import Any, Callable, Dict, Mapping, Optional, Protocol

import httpx

from approvalflow.core.config import Settings, get_settings
from approvalflow.core.errors import IntakeUnavailable, RequestNotFound
from approvalflow.services.http import get_with_retries

logger = logging.getLogger(__name__)


class RequestIntake(Protocol):
    def get_request_data(self, request_id: str) -> Mapping[str, Any]:
        """Return the rule-evaluation input for a submitted request."""
        ...


class InMemoryRequestIntake:
    """Intake backed by a dictionary of request id -> data."""

    def __init__(self, requests: Optional[Dict[str, Dict[str, Any]]] = None):
        self._requests: Dict[str, Dict[str, Any]] = dict(requests or {})

    def add_request(self, request_id: str, data: Dict[str, Any]) -> None:
        self._requests[request_id] = dict(data)

    def get_request_data(self, request_id: str) -> Mapping[str, Any]:
        if request_id not in self._requests:
            raise RequestNotFound(request_id)
        return dict(self._requests[request_id])


class HttpRequestIntake:
    """
    Intake client over HTTP.

    Endpoint: GET /requests/{id}/data -> flat JSON object
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client or httpx.Client(
            base_url=base_url or self.settings.intake_base_url,
            timeout=self.settings.integration_timeout,
        )
        self._sleep = sleep

    def close(self) -> None:
        self._client.close()

    def get_request_data(self, request_id: str) -> Mapping[str, Any]:
        kwargs = {"sleep": self._sleep} if self._sleep else {}
        response = get_with_retries(
            self._client,
            f"/requests/{request_id}/data",
            max_retries=self.settings.integration_max_retries,
            backoff_seconds=self.settings.integration_backoff_seconds,
            error_cls=IntakeUnavailable,
            **kwargs,
        )
        if response.status_code == 404:
            raise RequestNotFound(request_id)
        try:
            data = response.json()
        except ValueError as e:
            logger.warning(f"Malformed intake reply for request {request_id}: {e!r}")
            raise IntakeUnavailable(
                f"Request data for {request_id} is not valid JSON", request_id=request_id
            )
        if not isinstance(data, dict):
            raise IntakeUnavailable(
                f"Request data for {request_id} is not a key/value object", request_id=request_id
            )
        return data

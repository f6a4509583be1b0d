"""Replicate predictions API client with retries."""

import logging
from typing import Any, Dict, Optional

import httpx
from tenacity import (
    retry,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from system_agent.config import settings

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = (429, 500, 502, 503)


def is_retryable_error(exc: BaseException) -> bool:
    """Transport failures and rate-limit or server responses are worth another poll."""
    if isinstance(exc, httpx.TransportError):
        return True
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in RETRYABLE_STATUS_CODES


class ReplicateClient:
    """Thin client for creating and polling Replicate predictions."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """Initialize the client; unset arguments fall back to settings."""
        self.api_key = api_key if api_key is not None else settings.REPLICATE_API_KEY
        self.base_url = (base_url or settings.REPLICATE_BASE_URL).rstrip("/")
        self.transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _build_headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Token {self.api_key}",
            "Content-Type": "application/json",
        }

    def _client(self, timeout: float) -> httpx.Client:
        return httpx.Client(timeout=timeout, transport=self.transport)

    @staticmethod
    def _check_response(response: httpx.Response) -> Dict[str, Any]:
        if response.status_code in RETRYABLE_STATUS_CODES:
            logger.warning(f"Retryable error {response.status_code} from Replicate")
            raise httpx.HTTPStatusError(
                f"Retryable error: {response.status_code}",
                request=response.request,
                response=response,
            )
        response.raise_for_status()
        return response.json()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    def create_prediction(self, model: str, model_input: Dict[str, Any]) -> Dict[str, Any]:
        """
        Start a prediction.

        Args:
            model: Model identifier, e.g. "google/imagen-4-fast"
            model_input: Model input parameters

        Returns:
            Prediction JSON (includes "id" and "status")

        Raises:
            httpx.HTTPError: On API errors
        """
        with self._client(timeout=30.0) as client:
            response = client.post(
                f"{self.base_url}/predictions",
                headers=self._build_headers(),
                json={"model": model, "input": model_input},
            )
            return self._check_response(response)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_exception(is_retryable_error),
        reraise=True,
    )
    def get_prediction(self, prediction_id: str) -> Dict[str, Any]:
        """
        Fetch the current state of a prediction.

        Raises:
            httpx.HTTPError: On API errors after retries
        """
        with self._client(timeout=15.0) as client:
            response = client.get(
                f"{self.base_url}/predictions/{prediction_id}",
                headers=self._build_headers(),
            )
            return self._check_response(response)

"""
REST API client base.

Shared HTTP plumbing for backend clients:
- bounded timeouts
- retries on timeouts, network errors, 429 and 5xx
- request/response logging
- bearer authentication
- mapping of failures to TransientError / ProviderError
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from core.logging_config import get_logger
from domain.payment.exceptions import ProviderError, TransientError

logger = get_logger(__name__)
# tenacity's before_sleep_log expects a stdlib logger
_retry_logger = logging.getLogger(__name__)


class HTTPMethod(Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"


@dataclass
class APIResponse:
    """Captured HTTP response."""
    status_code: int
    headers: Dict[str, str]
    data: Any
    raw_content: bytes
    elapsed_ms: float
    request_id: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300

    @property
    def is_error(self) -> bool:
        return self.status_code >= 400

    def json(self) -> Any:
        if self.data is not None:
            return self.data
        return json.loads(self.raw_content)

    def text(self) -> str:
        return self.raw_content.decode("utf-8")


class RetryableAPIError(Exception):
    """Retryable status code; converted to TransientError once retries run out."""

    def __init__(self, response: APIResponse, retry_after: Optional[float] = None):
        self.response = response
        self.retry_after = retry_after
        super().__init__(f"Transient API error with status {response.status_code}")


RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class BaseAPIClient:
    """
    Base class for REST API clients.

    Subclasses call `get`/`post` with an `operation` name used in logs and
    error details.
    """

    def __init__(
        self,
        base_url: str,
        timeout: Union[float, httpx.Timeout] = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        headers: Optional[Dict[str, str]] = None,
        auth_token: Optional[str] = None,
        verify_ssl: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        debug: bool = False,
    ):
        """
        Args:
            base_url: API base URL
            timeout: seconds, or a full httpx.Timeout
            max_retries: default retry count for idempotent calls
            retry_delay: exponential backoff multiplier (seconds)
            headers: default request headers
            auth_token: bearer token
            verify_ssl: verify TLS certificates
            transport: custom httpx transport (tests use httpx.MockTransport)
            debug: log request and response bodies
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if isinstance(timeout, httpx.Timeout) else httpx.Timeout(timeout)
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.verify_ssl = verify_ssl
        self.debug = debug
        self._transport = transport

        self.default_headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if headers:
            self.default_headers.update(headers)

        if auth_token:
            self.set_auth_token(auth_token)

        self._client: Optional[httpx.AsyncClient] = None

    def set_auth_token(self, token: str, header_name: str = "Authorization", prefix: str = "Bearer"):
        self.default_headers[header_name] = f"{prefix} {token}" if prefix else token

    def remove_auth_token(self, header_name: str = "Authorization"):
        self.default_headers.pop(header_name, None)

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazily created shared AsyncClient."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                verify=self.verify_ssl,
                follow_redirects=True,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            finally:
                self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.lstrip("/")
        return f"{self.base_url}/{endpoint}"

    def _log_request(self, operation: str, method: str, url: str, **kwargs):
        if self.debug:
            logger.debug(
                "api_request",
                operation=operation,
                method=method,
                url=url,
                params=kwargs.get("params"),
                json=kwargs.get("json"),
            )

    def _log_response(self, operation: str, response: APIResponse):
        if self.debug:
            logger.debug(
                "api_response",
                operation=operation,
                status_code=response.status_code,
                elapsed_ms=round(response.elapsed_ms, 2),
                request_id=response.request_id,
                data=response.data if response.status_code < 400 else None,
            )

    @staticmethod
    def _error_message(response: APIResponse) -> str:
        message = f"API request failed with status {response.status_code}"
        data = response.data
        if isinstance(data, dict):
            error = data.get("error")
            if isinstance(error, dict):
                error = error.get("message")
            message = data.get("message") or error or data.get("detail") or message
        return str(message)

    def _raise_for_error(self, operation: str, response: APIResponse):
        details = {"request_id": response.request_id}
        if isinstance(response.data, dict) and isinstance(response.data.get("error"), dict):
            details["error_code"] = response.data["error"].get("code")
        raise ProviderError(
            self._error_message(response),
            operation=operation,
            status_code=response.status_code,
            details=details,
        )

    async def _request(
        self,
        method: Union[str, HTTPMethod],
        endpoint: str,
        *,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
        json_data: Optional[Union[Dict[str, Any], BaseModel]] = None,
        headers: Optional[Dict[str, str]] = None,
        retries: Optional[int] = None,
    ) -> APIResponse:
        """
        Send one logical request, retrying transient failures.

        Args:
            method: HTTP method
            endpoint: path relative to base_url
            operation: logical operation name for logs and errors
            params: query parameters
            json_data: JSON body (dict or pydantic model)
            headers: extra headers
            retries: retry count override; 0 disables retries

        Raises:
            TransientError: timeout, network failure, or 429/5xx after retries
            ProviderError: any other non-2xx response
        """
        if isinstance(method, HTTPMethod):
            method = method.value

        url = self._build_url(endpoint)
        request_headers = {**self.default_headers}
        if headers:
            request_headers.update(headers)

        if isinstance(json_data, BaseModel):
            json_data = json_data.model_dump(mode="json", by_alias=True, exclude_none=True)

        if params:
            params = {k: v for k, v in params.items() if v is not None}

        self._log_request(operation, method, url, params=params, json=json_data)

        async def _send_once() -> APIResponse:
            start_time = datetime.now()
            response = await self.client.request(
                method=method,
                url=url,
                params=params,
                json=json_data,
                headers=request_headers,
            )
            elapsed = (datetime.now() - start_time).total_seconds() * 1000

            response_data = None
            if "application/json" in response.headers.get("content-type", ""):
                try:
                    response_data = response.json()
                except json.JSONDecodeError:
                    response_data = None

            api_response = APIResponse(
                status_code=response.status_code,
                headers=dict(response.headers),
                data=response_data,
                raw_content=response.content,
                elapsed_ms=elapsed,
                request_id=response.headers.get("x-request-id"),
            )
            self._log_response(operation, api_response)

            if api_response.status_code in RETRY_STATUS_CODES:
                retry_after: Optional[float] = None
                if api_response.status_code == 429:
                    try:
                        retry_after = float(api_response.headers.get("retry-after") or 0) or None
                    except (TypeError, ValueError):
                        retry_after = None
                raise RetryableAPIError(api_response, retry_after=retry_after)

            if api_response.is_error:
                self._raise_for_error(operation, api_response)

            return api_response

        max_retries = self.max_retries if retries is None else retries
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(max_retries + 1),
            wait=wait_exponential(
                multiplier=self.retry_delay,
                min=self.retry_delay,
                max=self.retry_delay * 8,
            ),
            retry=retry_if_exception_type((httpx.TimeoutException, httpx.NetworkError, RetryableAPIError)),
            before_sleep=before_sleep_log(_retry_logger, logging.WARNING),
        )

        try:
            async for attempt in retrying:
                with attempt:
                    return await _send_once()
        except httpx.TimeoutException as exc:
            raise TransientError(f"Request timed out: {exc}", operation=operation) from exc
        except httpx.NetworkError as exc:
            raise TransientError(f"Network error: {exc}", operation=operation) from exc
        except RetryableAPIError as exc:
            raise TransientError(
                self._error_message(exc.response),
                operation=operation,
                details={"status_code": exc.response.status_code, "retry_after": exc.retry_after},
            ) from exc
        except httpx.HTTPError as exc:
            raise TransientError(f"HTTP error: {exc}", operation=operation) from exc

    async def get(self, endpoint: str, *, operation: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.GET, endpoint, operation=operation, **kwargs)

    async def post(self, endpoint: str, *, operation: str, **kwargs) -> APIResponse:
        return await self._request(HTTPMethod.POST, endpoint, operation=operation, **kwargs)


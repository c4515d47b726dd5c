"""
Async HTTP client wrapper for provider requests.
Single attempt per call with timeout management, quota accounting, metrics
and a typed error taxonomy. Callers decide how to degrade; nothing retries here.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import PROVIDER_LATENCY, PROVIDER_QUOTA_USED, PROVIDER_REQUESTS
from shared.utils.redis_manager import RedisManager

logger = get_logger(__name__)


# ── Errors ──────────────────────────────────────────────────────────────
class ProviderError(Exception):
    """Upstream call failed."""

    def __init__(self, message: str, *, status_code: int | None = None, endpoint: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ProviderAuthError(ProviderError):
    """Key missing, invalid or without access to the requested resource."""


class ProviderRateLimited(ProviderError):
    """Per-minute or daily request quota exhausted."""


class ProviderUnavailable(ProviderError):
    """Timeout, transport failure or 5xx."""


_AUTH_ERROR_KEYS = ("token", "access")
_QUOTA_ERROR_KEYS = ("requests", "rateLimit")


def classify_body_errors(errors: Any, endpoint: str) -> ProviderError | None:
    """
    API-Football reports some failures inside a 200 body, as either a dict
    keyed by category or a list of messages. Empty containers mean success.
    """
    if not errors:
        return None
    if isinstance(errors, dict):
        message = "; ".join(f"{k}: {v}" for k, v in errors.items())
        if any(k in errors for k in _AUTH_ERROR_KEYS):
            return ProviderAuthError(message, status_code=200, endpoint=endpoint)
        if any(k in errors for k in _QUOTA_ERROR_KEYS):
            return ProviderRateLimited(message, status_code=200, endpoint=endpoint)
        return ProviderError(message, status_code=200, endpoint=endpoint)
    return ProviderError(str(errors), status_code=200, endpoint=endpoint)


# ── Call recording ──────────────────────────────────────────────────────
@dataclass(frozen=True)
class ApiCall:
    """One upstream request, as handed to the call recorder."""
    endpoint: str
    method: str
    status_code: Optional[int]
    latency_ms: int
    error: Optional[str] = None


CallRecorder = Callable[[ApiCall], Awaitable[None]]


class ProviderHTTPClient:
    """
    Async HTTP client tailored for sports data provider APIs.
    Handles timeouts, records metrics and quota per request, maps failures
    onto ProviderError subclasses.
    """

    def __init__(
        self,
        provider_name: str,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_s: float | None = None,
        settings: Settings | None = None,
        redis: RedisManager | None = None,
        on_call: CallRecorder | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._provider = provider_name
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_s or settings.provider_request_timeout_s
        self._default_headers = headers or {}
        self._redis = redis
        self._on_call = on_call
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def provider(self) -> str:
        return self._provider

    async def start(self) -> None:
        """Initialize the underlying httpx client."""
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._default_headers,
            timeout=httpx.Timeout(self._timeout, connect=5.0),
            follow_redirects=True,
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
            transport=self._transport,
        )

    async def close(self) -> None:
        """Close the underlying httpx client."""
        if self._client:
            await self._client.aclose()

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        """
        Perform a GET request and return the decoded JSON body.

        Args:
            path: API path relative to base_url.
            params: Query parameters.

        Returns:
            The decoded JSON object.

        Raises:
            ProviderAuthError: 401/403 or a token/access error in the body.
            ProviderRateLimited: 429 or a requests/rateLimit error in the body.
            ProviderUnavailable: Timeout, transport error or 5xx.
            ProviderError: Any other non-success outcome.
        """
        if not self._client:
            raise RuntimeError("ProviderHTTPClient not started. Call start() first.")

        start_time = time.perf_counter()
        status_code: Optional[int] = None
        failure: Optional[ProviderError] = None
        body: dict[str, Any] = {}

        try:
            resp = await self._client.get(path, params=params)
            status_code = resp.status_code
            failure = self._classify_status(resp, path)
            if failure is None:
                try:
                    decoded = resp.json()
                except ValueError:
                    failure = ProviderError("Malformed JSON body", status_code=status_code, endpoint=path)
                else:
                    if isinstance(decoded, dict):
                        body = decoded
                        failure = classify_body_errors(body.get("errors"), path)
                    else:
                        failure = ProviderError("Unexpected JSON body", status_code=status_code, endpoint=path)
        except httpx.TimeoutException as exc:
            failure = ProviderUnavailable(f"Timeout: {exc}", endpoint=path)
        except httpx.TransportError as exc:
            failure = ProviderUnavailable(f"Transport error: {exc}", endpoint=path)

        latency_s = time.perf_counter() - start_time
        await self._record(path, status_code, latency_s, failure)

        if failure is not None:
            raise failure
        return body

    @staticmethod
    def _classify_status(resp: httpx.Response, path: str) -> ProviderError | None:
        code = resp.status_code
        if code < 400:
            return None
        message = f"HTTP {code} {resp.reason_phrase}".strip()
        if code in (401, 403):
            return ProviderAuthError(message, status_code=code, endpoint=path)
        if code == 429:
            return ProviderRateLimited(message, status_code=code, endpoint=path)
        if code >= 500:
            return ProviderUnavailable(message, status_code=code, endpoint=path)
        return ProviderError(message, status_code=code, endpoint=path)

    async def _record(
        self,
        path: str,
        status_code: Optional[int],
        latency_s: float,
        failure: Optional[ProviderError],
    ) -> None:
        latency_ms = int(round(latency_s * 1000))
        status = str(status_code) if status_code is not None else "error"
        if isinstance(failure, ProviderUnavailable) and status_code is None:
            status = "unavailable"

        PROVIDER_REQUESTS.labels(provider=self._provider, endpoint=path, status=status).inc()
        PROVIDER_LATENCY.labels(provider=self._provider).observe(latency_s)

        if failure is None:
            logger.debug(
                "provider_request_success",
                provider=self._provider,
                path=path,
                status=status_code,
                latency_ms=latency_ms,
            )
        elif isinstance(failure, ProviderAuthError):
            logger.error(
                "provider_auth_failure",
                provider=self._provider,
                path=path,
                status=status_code,
                error=str(failure),
            )
        elif isinstance(failure, ProviderRateLimited):
            logger.error(
                "provider_quota_exhausted",
                provider=self._provider,
                path=path,
                status=status_code,
                error=str(failure),
            )
        else:
            logger.warning(
                "provider_request_failed",
                provider=self._provider,
                path=path,
                status=status_code,
                latency_ms=latency_ms,
                error=str(failure),
            )

        if self._redis is not None:
            try:
                used = await self._redis.increment_quota(self._provider)
                PROVIDER_QUOTA_USED.labels(provider=self._provider).set(used)
            except Exception as exc:
                logger.warning("provider_quota_count_failed", provider=self._provider, error=str(exc))

        if self._on_call is not None:
            call = ApiCall(
                endpoint=path,
                method="GET",
                status_code=status_code,
                latency_ms=latency_ms,
                error=str(failure) if failure else None,
            )
            try:
                await self._on_call(call)
            except Exception as exc:
                logger.warning("provider_call_log_failed", path=path, error=str(exc))

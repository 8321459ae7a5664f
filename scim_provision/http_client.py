"""Thin HTTP abstraction for talking to the SCIM directory.

Wraps ``requests`` with the handful of behaviors the hook needs:

- Bearer token authentication on every call
- Pre-encoded query suffixes (``?filter=...``) appended to the resource path
- Explicit per-request timeout
- Automatic 429 Too Many Requests retry with Retry-After header support
- Typed errors for transport, parse, and API failures
- ``redact_auth()`` helper for safe logging of headers
"""

import json
import logging
import time
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

# Retry policy for 429 Too Many Requests (RFC 6585)
_MAX_RETRIES = 3
_DEFAULT_RETRY_AFTER = 2  # seconds, used when Retry-After header is missing


class SCIMError(Exception):
    """Base class for every failure raised while talking to the directory."""


class SCIMTransportError(SCIMError):
    """The request never produced an HTTP response (DNS, TLS, timeout, reset)."""


class SCIMResponseError(SCIMError):
    """The response body was not JSON or did not have the expected shape."""


class SCIMAPIError(SCIMError):
    """The directory answered with a non-2xx status.

    Attributes:
        status:  HTTP status code.
        detail:  ``detail`` from a SCIM Error body, or the raw body text.
    """

    def __init__(self, status: int, detail: str = ""):
        self.status = status
        self.detail = detail
        msg = f"SCIM request failed with HTTP {status}"
        if detail:
            msg = f"{msg}: {detail}"
        super().__init__(msg)


class SCIMResponse:
    """Normalized HTTP response wrapper."""

    def __init__(self, status_code: int, headers: Dict[str, str], body: str):
        self.status_code = status_code
        self.headers = headers
        self.body = body
        self._json = None
        self._parsed = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        """Parse and cache the response body as JSON.

        An empty body parses to ``None``.  A body that is not JSON raises
        ``SCIMResponseError``.
        """
        if not self._parsed:
            try:
                self._json = json.loads(self.body) if self.body else None
            except ValueError as e:
                raise SCIMResponseError(
                    f"Response body is not valid JSON (HTTP {self.status_code}): {e}"
                ) from e
            self._parsed = True
        return self._json

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        lower = name.lower()
        for k, v in self.headers.items():
            if k.lower() == lower:
                return v
        return None

    def raise_for_status(self) -> "SCIMResponse":
        """Raise ``SCIMAPIError`` unless the status is 2xx.  Returns self for chaining."""
        if self.ok:
            return self
        detail = self.body
        try:
            data = self.json()
        except SCIMResponseError:
            data = None
        if isinstance(data, dict) and data.get("detail"):
            detail = str(data["detail"])
        raise SCIMAPIError(self.status_code, detail)


class SCIMClient:
    """HTTP client for the SCIM directory.

    Args:
        base_url:     Root URL of the SCIM endpoint (e.g. ``https://example.com/scim/v2``)
        token:        Bearer token sent on every request
        timeout:      Per-request timeout in seconds
        max_retries:  How many times a 429 response is retried before giving up
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        timeout: float = 30,
        max_retries: int = _MAX_RETRIES,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()

    # -- Public API ----------------------------------------------------------

    def get(self, path: str, query: str = "") -> SCIMResponse:
        """Send a GET request; ``query`` is an already-encoded ``?...`` suffix."""
        return self.request("GET", path, query=query)

    def post(self, path: str, payload: Dict[str, Any]) -> SCIMResponse:
        """Send a POST request with a JSON payload."""
        return self.request("POST", path, payload)

    def put(self, path: str, payload: Dict[str, Any]) -> SCIMResponse:
        """Send a PUT request with a JSON payload."""
        return self.request("PUT", path, payload)

    def patch(self, path: str, payload: Dict[str, Any]) -> SCIMResponse:
        """Send a PATCH request with a JSON payload."""
        return self.request("PATCH", path, payload)

    def request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        query: str = "",
    ) -> SCIMResponse:
        """Execute an HTTP request with automatic 429 retry.

        Retries up to ``max_retries`` times when the server responds with
        429 Too Many Requests, sleeping for the duration specified by the
        ``Retry-After`` header (or ``_DEFAULT_RETRY_AFTER`` if absent).

        The returned response may carry any status; callers decide whether
        to ``raise_for_status()``.
        """
        url = f"{self.base_url}/{path.lstrip('/')}{query}"
        headers = self._build_headers()
        logger.debug("%s %s headers=%s", method, url, redact_auth(headers))

        for attempt in range(self.max_retries + 1):
            resp = self._send(method, url, headers, payload)

            if resp.status_code == 429 and attempt < self.max_retries:
                retry_after = _parse_retry_after(resp.header("Retry-After"))
                logger.warning(
                    "%s %s throttled (429), retrying in %.1fs (attempt %d/%d)",
                    method, url, retry_after, attempt + 1, self.max_retries,
                )
                time.sleep(retry_after)
                continue

            return resp

        return resp  # Return last response if all retries exhausted

    # -- Internals -----------------------------------------------------------

    def _build_headers(self) -> Dict[str, str]:
        """Build the default SCIM request headers with the bearer credential."""
        return {
            "Accept": "application/scim+json",
            "Content-Type": "application/scim+json",
            "Authorization": f"Bearer {self.token}",
        }

    def _send(
        self,
        method: str,
        url: str,
        headers: Dict[str, str],
        payload: Optional[Dict[str, Any]],
    ) -> SCIMResponse:
        """Execute a single request and normalize it to ``SCIMResponse``."""
        kwargs: Dict[str, Any] = {
            "headers": headers,
            "timeout": self.timeout,
        }
        if payload is not None:
            kwargs["data"] = json.dumps(payload)

        try:
            resp = self.session.request(method, url, **kwargs)
        except requests.RequestException as e:
            raise SCIMTransportError(f"{method} {url} failed: {e}") from e
        return SCIMResponse(resp.status_code, dict(resp.headers), resp.text)


def _parse_retry_after(value: Optional[str]) -> float:
    """Parse a Retry-After header value into seconds to wait.

    Handles integer-second values per RFC 7231 Section 7.1.3.
    Returns ``_DEFAULT_RETRY_AFTER`` if the header is missing or unparseable.
    """
    if value is None or value == "":
        return _DEFAULT_RETRY_AFTER
    try:
        return max(0.0, float(value))
    except ValueError:
        return _DEFAULT_RETRY_AFTER


def redact_auth(headers: Dict[str, str]) -> Dict[str, str]:
    """Return a copy of headers with Authorization values replaced by ``***REDACTED***``.

    Use this when including headers in logs or error messages to avoid
    leaking bearer tokens.
    """
    redacted = dict(headers)
    for key in list(redacted.keys()):
        if key.lower() == "authorization":
            redacted[key] = "***REDACTED***"
    return redacted

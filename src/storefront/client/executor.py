"""One HTTP request in, one typed outcome out."""

import logging
import re
import time

import requests

from storefront.core.models import RequestDescriptor
from storefront.core.outcomes import (
    AuthExpired,
    ClientError,
    NetworkError,
    Outcome,
    ServerError,
    Success,
)

logger = logging.getLogger(__name__)

# The backend sometimes reports an expired credential inside an otherwise
# successful (or 400) JSON body instead of answering 401.
EXPIRY_MARKERS = ("jwt expired", "token expired", "token_expired")
_EXPIRY_FIELDS = ("errorMessage", "message", "error", "code")


def is_auth_expiry(status: int, payload) -> bool:
    """Return ``True`` if a response means "the access credential expired".

    Args:
        status: HTTP status code.
        payload: Decoded JSON body, or ``None``.

    Returns:
        ``True`` for HTTP 401, and for any non-5xx response whose body
        carries one of the backend's expiry error codes.
    """
    if status == 401:
        return True
    if status >= 500 or not isinstance(payload, dict):
        return False
    for name in _EXPIRY_FIELDS:
        value = payload.get(name)
        if isinstance(value, str):
            lowered = value.lower()
            if any(marker in lowered for marker in EXPIRY_MARKERS):
                return True
    return False


class RequestExecutor:
    """Builds and sends single requests against a fixed base URL.

    The executor never raises for an HTTP error response; see
    :mod:`storefront.core.outcomes`.  It has no knowledge of sessions or
    refresh: credentials are handed to it per call.

    Args:
        base_url: API root, e.g. ``"https://api.example.com/v1"``.
        timeout: Default per-request timeout in seconds.
        user_agent: The User-Agent header value for all requests.
        session: Optional pre-built :class:`requests.Session`.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        user_agent: str = "storefront-client/0.1",
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": user_agent,
            "Accept": "application/json",
        })

    def resolve_url(self, path: str) -> str:
        """Return the absolute URL for *path*.

        Absolute ``http(s)`` URLs are returned unchanged.
        """
        if re.match(r"^https?://", path, re.IGNORECASE):
            return path
        if not path.startswith("/"):
            path = f"/{path}"
        return f"{self.base_url}{path}"

    def execute(
        self,
        descriptor: RequestDescriptor,
        access_token: str | None = None,
        timeout: float | None = None,
    ) -> Outcome:
        """Send one request and classify the result.

        Args:
            descriptor: What to send.
            access_token: Sent as a bearer ``Authorization`` header when
                given.
            timeout: Overrides the default timeout for this call.

        Returns:
            Exactly one :class:`~storefront.core.outcomes.Outcome`.
        """
        headers = dict(descriptor.headers)
        if descriptor.body is not None:
            headers["Content-Type"] = "application/json"
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"

        url = self.resolve_url(descriptor.path)
        started = time.monotonic()
        try:
            response = self.session.request(
                descriptor.method,
                url,
                headers=headers,
                json=descriptor.body,
                timeout=timeout or self.timeout,
            )
        except requests.Timeout as exc:
            logger.debug("%s %s timed out", descriptor.method, descriptor.path)
            return NetworkError("timeout", str(exc))
        except requests.ConnectionError as exc:
            logger.debug(
                "%s %s connection failed", descriptor.method, descriptor.path
            )
            return NetworkError("connection", str(exc))
        except requests.RequestException as exc:
            return NetworkError("transport", str(exc))

        logger.debug(
            "%s %s -> %s (%.0f ms)",
            descriptor.method,
            descriptor.path,
            response.status_code,
            (time.monotonic() - started) * 1000,
        )
        return self.classify(response, descriptor.authenticated)

    @staticmethod
    def classify(response: requests.Response, authenticated: bool = True) -> Outcome:
        """Map an HTTP response to an outcome.

        Args:
            response: The received response.
            authenticated: Whether the request went through credential
                handling.  When ``False`` a 401 is an ordinary client
                error.

        Returns:
            The matching :class:`~storefront.core.outcomes.Outcome`.
        """
        status = response.status_code
        payload = _decode(response)

        if status >= 500:
            return ServerError(status, payload)
        if authenticated and is_auth_expiry(status, payload):
            return AuthExpired(status, payload)
        if 200 <= status < 300:
            return Success(payload, status)
        return ClientError(status, payload, _message(response, payload))


def _decode(response: requests.Response):
    if response.status_code == 204 or not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return None


def _message(response: requests.Response, payload) -> str:
    if isinstance(payload, dict):
        for name in ("message", "errorMessage"):
            if payload.get(name):
                return str(payload[name])
    return response.reason or "Request failed"

"""Typed results of a single HTTP exchange.

The request executor never raises for an HTTP error response.  Every
response (or transport failure) is classified into exactly one of the
outcome types below, and callers branch on the type::

    outcome = client.get("/orders")
    if isinstance(outcome, Success):
        render(outcome.body)
    elif isinstance(outcome, NetworkError):
        show_retry_button()

Feature code that prefers exceptions can call :meth:`Outcome.unwrap`.
"""

from dataclasses import dataclass

from storefront.core.exceptions import ApiError


class Outcome:
    """Base class for all request outcomes."""

    ok = False

    def unwrap(self):
        """Return the decoded body of a success, or raise :class:`ApiError`.

        Raises:
            ApiError: For every outcome other than :class:`Success`.
        """
        raise NotImplementedError


@dataclass(frozen=True)
class Success(Outcome):
    """A 2xx response whose body carried no expiry signal."""

    body: object
    status: int = 200

    ok = True

    def unwrap(self):
        return self.body


@dataclass(frozen=True)
class AuthExpired(Outcome):
    """The access credential was rejected as expired or invalid.

    Produced for HTTP 401 and for the backend's embedded expiry error
    codes, which may arrive inside an otherwise successful response.
    """

    status: int
    body: object = None

    def unwrap(self):
        raise ApiError("Access credential expired", self.status, self.body)


@dataclass(frozen=True)
class ClientError(Outcome):
    """A non-auth 4xx response.  Never retried."""

    status: int
    body: object = None
    message: str = "Request failed"

    def unwrap(self):
        code = self.body.get("code") if isinstance(self.body, dict) else None
        raise ApiError(self.message, self.status, self.body, code)


@dataclass(frozen=True)
class ServerError(Outcome):
    """A 5xx response.  Transient; the caller may retry with backoff."""

    status: int
    body: object = None

    def unwrap(self):
        raise ApiError(f"Server error ({self.status})", self.status, self.body)


@dataclass(frozen=True)
class NetworkError(Outcome):
    """A transport failure: timeout, DNS failure, connection reset."""

    reason: str
    """One of ``"timeout"``, ``"connection"``, or ``"transport"``."""

    detail: str = ""

    def unwrap(self):
        raise ApiError(
            self.detail or "Network request failed",
            0,
            code="NETWORK_ERROR",
        )

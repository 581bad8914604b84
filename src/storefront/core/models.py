"""Data model dataclasses shared by the request layer."""

import time
from dataclasses import dataclass, field
from enum import Enum

# ----------------------
# Credentials
# ----------------------


@dataclass(frozen=True)
class CredentialPair:
    """The session's access and refresh credentials.

    Both tokens are always present together.  A pair is replaced wholesale
    on refresh and never mutated in place.
    """

    access_token: str
    refresh_token: str

    expires_in: int | None = None
    """Lifetime of the access credential in seconds, when the backend sends it."""

    issued_at: float = field(default_factory=time.time)
    """Unix timestamp of when the pair was issued (login or refresh)."""

    def __post_init__(self):
        if not self.access_token or not self.refresh_token:
            raise ValueError(
                "A credential pair needs both an access and a refresh token."
            )

    @property
    def expires_at(self) -> float | None:
        """Unix timestamp at which the access credential expires, if known."""
        if self.expires_in is None:
            return None
        return self.issued_at + self.expires_in

    def is_expired(self, buffer_seconds: int = 60) -> bool:
        """Return ``True`` if the access credential has expired (or is about to).

        A pair without ``expires_in`` is never considered expired locally;
        only the backend can reject it.

        Args:
            buffer_seconds: Treat the credential as expired this many
                seconds early, to absorb clock skew and network latency.
                Ignored when the credential's lifetime is shorter than the
                buffer, otherwise every request would trigger a refresh.

        Returns:
            ``True`` when the credential should be refreshed before use.
        """
        if self.expires_in is None:
            return False
        elapsed = time.time() - self.issued_at
        if elapsed >= self.expires_in:
            return True
        if self.expires_in > buffer_seconds:
            return elapsed >= self.expires_in - buffer_seconds
        return False


# ----------------------
# Profile
# ----------------------


@dataclass
class Profile:
    """Cached identity of the authenticated customer."""

    id: str
    name: str | None = None
    email: str | None = None
    phone: str | None = None
    image: str | None = None
    address: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> "Profile":
        """Build a profile from a login or customer response.

        Accepts both the flat login shape (``_id``, ``name``, ...) and a
        nested ``profile`` object.

        Raises:
            ValueError: If the payload carries no customer id.
        """
        data = payload.get("profile") or payload
        customer_id = data.get("_id") or data.get("id")
        if not customer_id:
            raise ValueError("Customer payload has no id.")
        return cls(
            id=str(customer_id),
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            image=data.get("image"),
            address=data.get("address"),
        )


# ----------------------
# Requests
# ----------------------

METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True)
class RequestDescriptor:
    """Everything needed to send (and later replay) one request."""

    method: str
    path: str
    """Path relative to the API base URL, or an absolute ``http(s)`` URL."""

    body: object = None
    """JSON-serialisable request body, or ``None``."""

    headers: dict = field(default_factory=dict)

    authenticated: bool = True
    """When ``False`` no credential is attached and a 401 is an ordinary
    client error (e.g. a wrong password on the login endpoint)."""

    def __post_init__(self):
        if self.method not in METHODS:
            raise ValueError(f"Unsupported HTTP method: {self.method!r}")
        if not isinstance(self.path, str) or not self.path:
            raise ValueError("Request path must be a non-empty string.")


# ----------------------
# Session lifecycle
# ----------------------


class SessionState(str, Enum):
    """Lifecycle of the authenticated session as seen by callers."""

    ANONYMOUS = "anonymous"
    ACTIVE = "active"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


class CoordinatorState(str, Enum):
    """Internal state of a :class:`~storefront.auth.refresh.RefreshCoordinator`."""

    IDLE = "idle"
    REFRESHING = "refreshing"
    FAILED = "failed"

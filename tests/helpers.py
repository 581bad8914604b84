"""Shared test doubles: an in-process fake of the storefront backend."""

import json
import threading
import time
from dataclasses import dataclass

import requests

BASE_URL = "http://api.test/v1"


@dataclass
class RecordedCall:
    method: str
    path: str
    token: str | None
    body: object
    timeout: float | None


def make_response(status: int, body=None, reason: str = "") -> requests.Response:
    """Build a real :class:`requests.Response` without touching the network."""
    response = requests.Response()
    response.status_code = status
    response.reason = reason or {
        200: "OK",
        204: "No Content",
        400: "Bad Request",
        401: "Unauthorized",
        404: "Not Found",
        503: "Service Unavailable",
    }.get(status, "")
    response.encoding = "utf-8"
    if body is None:
        response._content = b""
    elif isinstance(body, str):
        response._content = body.encode("utf-8")
    else:
        response._content = json.dumps(body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    return response


class FakeSession(requests.Session):
    """Routes requests to handlers keyed by ``(method, path)``.

    A handler receives the :class:`RecordedCall` and returns a response or
    an exception instance to raise.  A route registered with method ``"*"``
    matches any verb.
    """

    def __init__(self, routes: dict | None = None):
        super().__init__()
        self.routes = dict(routes or {})
        self.calls: list[RecordedCall] = []
        self._calls_lock = threading.Lock()

    def request(self, method, url, headers=None, json=None, timeout=None, **kwargs):
        path = url[len(BASE_URL):] if url.startswith(BASE_URL) else url
        auth = (headers or {}).get("Authorization", "")
        token = auth[len("Bearer "):] if auth.startswith("Bearer ") else None
        call = RecordedCall(method, path, token, json, timeout)
        with self._calls_lock:
            self.calls.append(call)
        handler = self.routes.get((method, path)) or self.routes.get(("*", path))
        if handler is None:
            return make_response(404, {"message": f"No route for {path}"})
        result = handler(call)
        if isinstance(result, BaseException):
            raise result
        return result

    def calls_to(self, path: str) -> list[RecordedCall]:
        with self._calls_lock:
            return [c for c in self.calls if c.path == path]


class FakeBackend:
    """Storefront backend that rotates credentials on every refresh.

    Protected routes accept only the current access token and answer
    anything else with 401 (or with an embedded ``jwt expired`` error in a
    200 body when ``embedded_expiry`` is set).
    """

    def __init__(self, access: str = "A1", refresh: str = "R1"):
        self.access = access
        self.refresh = refresh
        self.generation = 1
        self.embedded_expiry = False
        self.lock = threading.Lock()

    def expire(self) -> None:
        """Invalidate the current access token server-side."""
        with self.lock:
            self.access = f"expired-{self.access}"

    def protected(self, call: RecordedCall) -> requests.Response:
        with self.lock:
            valid = call.token == self.access
        if valid:
            return make_response(200, {"path": call.path, "token": call.token})
        if self.embedded_expiry:
            return make_response(200, {"errorMessage": "jwt expired"})
        return make_response(401, {"message": "jwt expired"})

    def rotate(self, call: RecordedCall) -> requests.Response:
        with self.lock:
            if (call.body or {}).get("refreshToken") != self.refresh:
                return make_response(400, {"message": "invalid refresh token"})
            self.generation += 1
            self.access = f"A{self.generation}"
            self.refresh = f"R{self.generation}"
            return make_response(
                200, {"accessToken": self.access, "refreshToken": self.refresh}
            )


def wait_until(predicate, timeout: float = 5.0) -> None:
    """Poll *predicate* until it is true, failing the test after *timeout*."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition was not met in time")
        time.sleep(0.005)

"""The authenticated client, the only entry point used by feature code."""

import logging
import threading
from concurrent.futures import CancelledError, Future, ThreadPoolExecutor

from storefront.auth.credentials import CredentialStore
from storefront.auth.events import SessionEvents
from storefront.auth.refresh import PendingRequest, RefreshCoordinator
from storefront.client.executor import RequestExecutor
from storefront.config import Settings
from storefront.core.exceptions import SessionExpiredError
from storefront.core.models import (
    CoordinatorState,
    CredentialPair,
    Profile,
    RequestDescriptor,
    SessionState,
)
from storefront.core.outcomes import AuthExpired, Outcome

logger = logging.getLogger(__name__)


class Call:
    """Handle for a request submitted with :meth:`AuthenticatedClient.submit`.

    Cancelling a call that is parked behind a refresh removes it from the
    wait; its result is discarded and :meth:`result` raises
    :class:`concurrent.futures.CancelledError`.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._pending: PendingRequest | None = None
        self._future: Future | None = None

    def _bind(self, future: Future) -> None:
        with self._lock:
            self._future = future

    def _park(self, pending: PendingRequest) -> None:
        with self._lock:
            self._pending = pending

    def cancel(self) -> bool:
        """Abandon interest in this call's outcome.

        Only a call still queued on the worker pool, or parked behind a
        refresh, can be cancelled.  A call whose request is already on the
        wire runs to completion, side effects included.

        Returns:
            ``True`` if the call is now cancelled.
        """
        with self._lock:
            if not self._cancelled:
                future, pending = self._future, self._pending
                self._cancelled = (future is not None and future.cancel()) or (
                    pending is not None and pending.cancel()
                )
            return self._cancelled

    @property
    def cancelled(self) -> bool:
        with self._lock:
            return self._cancelled

    def done(self) -> bool:
        with self._lock:
            return self._cancelled or (
                self._future is not None and self._future.done()
            )

    def result(self, timeout: float | None = None) -> Outcome:
        """Wait for and return the call's outcome.

        Raises:
            CancelledError: If the call was cancelled.
            SessionExpiredError: If the session could not be recovered.
            concurrent.futures.TimeoutError: If *timeout* elapses first.
        """
        if self.cancelled:
            raise CancelledError()
        return self._future.result(timeout)


class AuthenticatedClient:
    """Sends requests with the current access credential and recovers
    transparently from expiry.

    Every logical call is retried at most once, and only after a successful
    refresh.  Transient ``NetworkError``/``ServerError`` outcomes are
    returned as-is: retrying non-idempotent calls such as order creation is
    the caller's decision.

    Example usage::

        settings = load_settings()
        client = AuthenticatedClient.from_settings(settings)
        client.events.subscribe(show_login_screen)
        outcome = client.get("/order/customer")

    Args:
        settings: Resolved :class:`~storefront.config.Settings`.
        store: Credential persistence.
        executor: Optional pre-built :class:`RequestExecutor`.
        events: Optional shared :class:`SessionEvents` registry.
        max_workers: Size of the pool used by :meth:`submit`.
    """

    def __init__(
        self,
        settings: Settings,
        store: CredentialStore,
        executor: RequestExecutor | None = None,
        events: SessionEvents | None = None,
        max_workers: int = 4,
    ):
        self.settings = settings
        self.store = store
        self.executor = executor or RequestExecutor(
            settings.api_base_url,
            timeout=settings.request_timeout,
            user_agent=settings.user_agent,
        )
        self.events = events or SessionEvents()
        self._max_workers = max_workers
        self._pool: ThreadPoolExecutor | None = None
        self._pool_lock = threading.Lock()
        self._coordinator = self._new_coordinator()

    @classmethod
    def from_settings(cls, settings: Settings) -> "AuthenticatedClient":
        """Build a client persisting credentials under ``settings.credentials_dir``."""
        return cls(settings, CredentialStore.in_directory(settings.credentials_dir))

    # -------------------------
    # Session lifecycle
    # -------------------------

    @property
    def coordinator(self) -> RefreshCoordinator:
        return self._coordinator

    @property
    def session_state(self) -> SessionState:
        return self._coordinator.session_state

    def start_session(self, pair: CredentialPair, profile: Profile | None = None) -> None:
        """Persist a freshly issued pair and start a new session.

        Used by the login flow.  Retires the current coordinator and
        installs a new one, so a session that previously ended in
        ``FAILED`` becomes usable again.

        Raises:
            StorageError: If the credentials cannot be persisted.
        """
        self._coordinator.retire()
        self.store.write(pair)
        if profile is not None:
            self.store.write_profile(profile)
        self._coordinator = self._new_coordinator()
        logger.info("Session started.")

    def end_session(self) -> None:
        """Forget the credentials locally.  Never raises."""
        self._coordinator.retire()
        self.store.clear()
        self._coordinator = self._new_coordinator()
        logger.info("Session ended by logout.")

    def _new_coordinator(self) -> RefreshCoordinator:
        return RefreshCoordinator(
            self.store,
            self._refresh_exchange,
            self.events,
            max_attempts=self.settings.refresh_max_attempts,
            backoff=self.settings.refresh_backoff,
        )

    def _refresh_exchange(self, refresh_token: str) -> Outcome:
        descriptor = RequestDescriptor(
            "POST",
            self.settings.refresh_path,
            {"refreshToken": refresh_token},
        )
        return self.raw(descriptor, timeout=self.settings.refresh_timeout)

    # -------------------------
    # Requests
    # -------------------------

    def raw(
        self,
        descriptor: RequestDescriptor,
        access_token: str | None = None,
        timeout: float | None = None,
    ) -> Outcome:
        """Send *descriptor* once, bypassing refresh handling entirely.

        Args:
            descriptor: What to send.
            access_token: Explicit credential override, if any.
            timeout: Overrides the default request timeout.
        """
        return self.executor.execute(descriptor, access_token, timeout)

    def request(
        self,
        method: str,
        path: str,
        body=None,
        headers: dict | None = None,
        authenticated: bool = True,
        call: Call | None = None,
    ) -> Outcome:
        """Send a request, refreshing the session once if it has expired.

        Args:
            method: HTTP verb.
            path: Path relative to the API base URL.
            body: Optional JSON body.
            headers: Extra request headers.
            authenticated: When ``False``, no credential is attached and no
                refresh is attempted.
            call: Handle to register with while parked behind a refresh.

        Returns:
            The outcome of the original request, or of its single retry.

        Raises:
            SessionExpiredError: If the session could not be recovered.
            ValueError: If the method or path is malformed.
        """
        descriptor = RequestDescriptor(
            method.upper(), path, body, dict(headers or {}), authenticated
        )
        if not authenticated:
            return self.executor.execute(descriptor)

        coordinator = self._coordinator
        if coordinator.state is CoordinatorState.FAILED:
            raise SessionExpiredError("Session has expired.")
        on_pending = call._park if call is not None else None

        refreshed = False
        pair = coordinator.current_pair()
        if pair is not None and pair.is_expired(self.settings.expiry_buffer_seconds):
            pair = coordinator.recover(descriptor, pair.access_token, on_pending)
            refreshed = True

        token = pair.access_token if pair is not None else None
        outcome = self.executor.execute(descriptor, token)
        if not isinstance(outcome, AuthExpired) or refreshed:
            return outcome

        pair = coordinator.recover(descriptor, token, on_pending)
        logger.debug("Retrying %s %s after refresh.", descriptor.method, descriptor.path)
        return self.executor.execute(descriptor, pair.access_token)

    def get(self, path: str, **kwargs) -> Outcome:
        return self.request("GET", path, **kwargs)

    def post(self, path: str, body=None, **kwargs) -> Outcome:
        return self.request("POST", path, body, **kwargs)

    def put(self, path: str, body=None, **kwargs) -> Outcome:
        return self.request("PUT", path, body, **kwargs)

    def patch(self, path: str, body=None, **kwargs) -> Outcome:
        return self.request("PATCH", path, body, **kwargs)

    def delete(self, path: str, **kwargs) -> Outcome:
        return self.request("DELETE", path, **kwargs)

    def submit(self, method: str, path: str, body=None, **kwargs) -> Call:
        """Run :meth:`request` on the client's worker pool.

        Returns:
            A :class:`Call` that can be waited on or cancelled.
        """
        call = Call()
        future = self._worker_pool().submit(
            self.request, method, path, body, call=call, **kwargs
        )
        call._bind(future)
        return call

    def _worker_pool(self) -> ThreadPoolExecutor:
        with self._pool_lock:
            if self._pool is None:
                self._pool = ThreadPoolExecutor(
                    max_workers=self._max_workers,
                    thread_name_prefix="storefront",
                )
            return self._pool

    # -------------------------
    # Resource management
    # -------------------------

    def close(self) -> None:
        """Shut down the worker pool and the HTTP session."""
        with self._pool_lock:
            pool, self._pool = self._pool, None
        if pool is not None:
            pool.shutdown(wait=True)
        self.executor.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

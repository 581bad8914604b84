"""Single-flight refresh of the access credential.

When a request finds its access credential expired, it hands control to
the :class:`RefreshCoordinator`.  Exactly one caller (the *leader*) runs
the refresh exchange; every other caller that arrives while the exchange
is in flight parks as a :class:`PendingRequest` and is released when the
leader finishes.  The refresh credential rotates on each use, so a second
concurrent exchange would burn the new credential and log the user out.

State machine::

    IDLE ──(expiry observed)──> REFRESHING ──(new pair stored)──> IDLE
                                     │
                                     └──(rejected / retries exhausted)──> FAILED

``FAILED`` is terminal.  The next login installs a fresh coordinator and
retires the old one: a refresh still in flight on a retired coordinator
never touches the store or notifies observers.
"""

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable

from storefront.auth.credentials import CredentialStore
from storefront.auth.events import SessionEvents
from storefront.core.exceptions import (
    RefreshRejectedError,
    SessionExpiredError,
    StorageError,
)
from storefront.core.models import (
    CoordinatorState,
    CredentialPair,
    RequestDescriptor,
    SessionState,
)
from storefront.core.outcomes import NetworkError, Outcome, ServerError, Success

logger = logging.getLogger(__name__)

Exchange = Callable[[str], Outcome]


@dataclass(eq=False)
class PendingRequest:
    """A caller parked until the in-flight refresh resolves.

    Resolved or rejected exactly once.  A cancelled request is still
    removed from the queue on drain, but nothing is delivered to it.
    """

    descriptor: RequestDescriptor
    future: Future = field(default_factory=Future)

    def cancel(self) -> bool:
        """Abandon interest in the outcome.

        Returns:
            ``True`` if the request was still waiting and is now cancelled.
        """
        return self.future.cancel()

    @property
    def cancelled(self) -> bool:
        return self.future.cancelled()

    def wait(self) -> CredentialPair:
        """Block until the refresh resolves.

        Raises:
            SessionExpiredError: If the refresh failed.
            concurrent.futures.CancelledError: If the request was cancelled.
        """
        return self.future.result()

    def _resolve(self, pair: CredentialPair) -> bool:
        if not self.future.set_running_or_notify_cancel():
            return False
        self.future.set_result(pair)
        return True

    def _reject(self, error: Exception) -> bool:
        if not self.future.set_running_or_notify_cancel():
            return False
        self.future.set_exception(error)
        return True


class RefreshCoordinator:
    """Owns the session state and the queue of pending requests.

    All shared state lives behind one lock, so the ``IDLE → REFRESHING``
    check-and-set and every enqueue/drain are atomic with respect to each
    other.  Network I/O never happens while the lock is held; the only I/O
    under it is the local store write or clear that ends a refresh.

    Args:
        store: Where the credential pair is persisted.
        exchange: Sends one refresh request for the given refresh credential
            and returns its :class:`~storefront.core.outcomes.Outcome`.  It
            must not go through the authenticated path.
        events: Receives the forced-logout notification.
        max_attempts: Total exchange attempts on network/server errors.
        backoff: Delay before the first retry, doubled on each retry.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        store: CredentialStore,
        exchange: Exchange,
        events: SessionEvents,
        max_attempts: int = 3,
        backoff: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._store = store
        self._exchange = exchange
        self._events = events
        self._max_attempts = max(1, max_attempts)
        self._backoff = backoff
        self._sleep = sleep

        self._lock = threading.Lock()
        self._state = CoordinatorState.IDLE
        self._pair = store.read()
        self._pending: list[PendingRequest] = []
        self._retired = False

    # -------------------------
    # Inspection
    # -------------------------

    @property
    def state(self) -> CoordinatorState:
        with self._lock:
            return self._state

    @property
    def session_state(self) -> SessionState:
        """The session lifecycle state derived from the coordinator state."""
        with self._lock:
            if self._state is CoordinatorState.FAILED:
                return SessionState.EXPIRED
            if self._state is CoordinatorState.REFRESHING:
                return SessionState.REFRESHING
            if self._pair is None:
                return SessionState.ANONYMOUS
            return SessionState.ACTIVE

    def current_pair(self) -> CredentialPair | None:
        """Return the in-memory credential pair, or ``None``."""
        with self._lock:
            return self._pair

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    # -------------------------
    # Recovery
    # -------------------------

    def recover(
        self,
        descriptor: RequestDescriptor,
        stale_token: str | None,
        on_pending: Callable[[PendingRequest], None] | None = None,
    ) -> CredentialPair:
        """Return a fresh pair for a request whose credential was rejected.

        Depending on the state when called, the caller either runs the
        refresh exchange itself, waits for the exchange already in flight,
        or (when *stale_token* has already been replaced) gets the current
        pair back immediately without any network call.

        Args:
            descriptor: The request that observed the expiry.
            stale_token: The access credential that request was sent with.
            on_pending: Called with the :class:`PendingRequest` when the
                caller is parked, so it can be cancelled from elsewhere.

        Returns:
            The credential pair the request should be retried with.

        Raises:
            SessionExpiredError: If there is no session to refresh or the
                refresh failed.
            concurrent.futures.CancelledError: If the parked request was
                cancelled.
        """
        with self._lock:
            if self._retired:
                raise SessionExpiredError("Session was ended.")
            if self._state is CoordinatorState.FAILED:
                raise SessionExpiredError("Session has expired.")
            if self._pair is None:
                raise SessionExpiredError("No active session to refresh.")
            if self._state is CoordinatorState.REFRESHING:
                pending = PendingRequest(descriptor)
                self._pending.append(pending)
            elif self._pair.access_token != stale_token:
                return self._pair
            else:
                pending = None
                self._state = CoordinatorState.REFRESHING
                refresh_token = self._pair.refresh_token

        if pending is not None:
            logger.debug(
                "Parking %s %s until refresh completes.",
                descriptor.method,
                descriptor.path,
            )
            if on_pending is not None:
                on_pending(pending)
            return pending.wait()

        logger.info(
            "Access credential expired (%s %s); refreshing.",
            descriptor.method,
            descriptor.path,
        )
        return self._lead_refresh(refresh_token)

    def retire(self) -> None:
        """Detach this coordinator from the session.

        Called when a login or logout replaces the session.  Parked
        requests are rejected with :class:`SessionExpiredError` at once.
        A refresh still in flight finishes without writing or clearing the
        store and without a forced-logout notification.
        """
        with self._lock:
            self._retired = True
            self._pair = None
            if self._state is CoordinatorState.IDLE:
                self._state = CoordinatorState.FAILED
            pending, self._pending = self._pending, []
        for p in pending:
            p._reject(SessionExpiredError("Session was ended."))
        if pending:
            logger.info(
                "Rejected %d request(s) parked on an ended session.", len(pending)
            )

    def _lead_refresh(self, refresh_token: str) -> CredentialPair:
        try:
            pair = self._exchange_with_retry(refresh_token)
            pending = self._commit(pair)
        except (RefreshRejectedError, StorageError) as exc:
            self._fail(exc)
            raise SessionExpiredError(
                "Session expired; please log in again."
            ) from exc
        except BaseException as exc:
            self._fail(exc)
            raise

        released = sum(p._resolve(pair) for p in pending)
        logger.info(
            "Refresh succeeded; released %d of %d pending request(s).",
            released,
            len(pending),
        )
        return pair

    def _commit(self, pair: CredentialPair) -> list[PendingRequest]:
        # Serialized with retire() by the lock.
        with self._lock:
            if self._retired:
                raise SessionExpiredError("Session was ended during refresh.")
            self._store.write(pair)
            self._pair = pair
            self._state = CoordinatorState.IDLE
            pending, self._pending = self._pending, []
        return pending

    def _fail(self, cause: BaseException) -> None:
        with self._lock:
            retired = self._retired
            if not retired:
                self._store.clear()
            self._pair = None
            self._state = CoordinatorState.FAILED
            pending, self._pending = self._pending, []
        for p in pending:
            p._reject(SessionExpiredError("Session expired; please log in again."))
        if retired:
            logger.info("Abandoned refresh for an ended session: %s", cause)
            return
        logger.warning("Refresh failed terminally: %s", cause)
        self._events.notify_forced_logout()

    def _exchange_with_retry(self, refresh_token: str) -> CredentialPair:
        """Run the exchange, retrying transient failures with backoff.

        Raises:
            RefreshRejectedError: If the backend rejects the refresh
                credential, returns an unusable body, or keeps failing
                transiently past the attempt limit.
        """
        for attempt in range(self._max_attempts):
            outcome = self._exchange(refresh_token)
            if isinstance(outcome, Success):
                return self._parse_pair(outcome.body, refresh_token)
            if not isinstance(outcome, (NetworkError, ServerError)):
                raise RefreshRejectedError(
                    "Refresh credential rejected.", outcome
                )
            if attempt + 1 < self._max_attempts:
                delay = self._backoff * 2 ** attempt
                logger.info(
                    "Refresh attempt %d/%d failed (%s); retrying in %.1fs.",
                    attempt + 1,
                    self._max_attempts,
                    type(outcome).__name__,
                    delay,
                )
                self._sleep(delay)
        raise RefreshRejectedError(
            f"Refresh failed after {self._max_attempts} attempt(s).", outcome
        )

    @staticmethod
    def _parse_pair(body, refresh_token: str) -> CredentialPair:
        """Map a refresh response body to a new :class:`CredentialPair`.

        The backend may name the access credential ``accessToken`` or
        ``token``.  When it does not rotate the refresh credential, the
        current one stays in use.
        """
        if not isinstance(body, dict):
            raise RefreshRejectedError("Refresh response was not a JSON object.")
        access = body.get("accessToken") or body.get("token")
        if not access:
            raise RefreshRejectedError("No access token in refresh response.")
        expires_in = body.get("expiresIn")
        try:
            expires_in = int(expires_in) if expires_in is not None else None
        except (TypeError, ValueError):
            raise RefreshRejectedError(f"Invalid expiresIn: {expires_in!r}")
        return CredentialPair(
            access_token=access,
            refresh_token=body.get("refreshToken") or refresh_token,
            expires_in=expires_in,
        )

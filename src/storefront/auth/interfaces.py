"""Abstract interfaces for the authentication layer.

This module defines the contracts the request layer depends on without
knowing the concrete persistence technology or the application that
reacts to a lost session.  File storage, an OS keychain, or an in-memory
dict can all back the credential store; a GUI auth context, a CLI, or a
test spy can all observe forced logouts.
"""

from abc import ABC, abstractmethod


class SlotBackend(ABC):
    """Durable key/value persistence with a fixed set of named slots.

    Values are strings.  Implementations only need independent per-slot
    writes; pair consistency is enforced one level up by
    :class:`~storefront.auth.credentials.CredentialStore`.
    """

    @abstractmethod
    def get(self, slot: str) -> str | None:
        """Return the stored value for *slot*, or ``None`` if absent.

        Raises:
            OSError: If the backing storage cannot be read.
        """

    @abstractmethod
    def set(self, slot: str, value: str) -> None:
        """Store *value* under *slot*, replacing any previous value.

        Raises:
            OSError: If the backing storage is unavailable (e.g. locked).
        """

    @abstractmethod
    def delete(self, slot: str) -> None:
        """Remove *slot*.  Deleting an absent slot is not an error.

        Raises:
            OSError: If the backing storage is unavailable.
        """


class SessionObserver(ABC):
    """Receives the forced-logout notification.

    Typically an application-level auth context that redirects to the
    login screen and drops any other session-scoped state (cart, caches).
    Plain callables are accepted too; see
    :meth:`~storefront.auth.events.SessionEvents.subscribe`.
    """

    @abstractmethod
    def on_forced_logout(self) -> None:
        """Called once when the session ends because refresh failed."""

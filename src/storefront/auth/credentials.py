"""Persistent storage for the session's credentials and cached profile.

Three named slots are managed here:

* ``access_token``: the short-lived access credential.
* ``refresh_token``: the long-lived refresh credential.
* ``profile``: the cached customer profile (JSON).

Token slots hold a small JSON record ``{"token": ..., "generation": ...}``.
A pair is written access-first and refresh-last with a shared generation
id, and only read back as a pair when the generations match.  A crash
between the two writes therefore leaves a record that reads as *absent*
(forcing a new login) instead of an access credential from one session
matched with a refresh credential from another.

With :class:`FileSlotBackend` each slot lives in its own file under
``~/.config/storefront/`` with permissions restricted to the owner (0o600).
"""

import json
import logging
import os
import secrets
import tempfile
import threading
from dataclasses import asdict
from pathlib import Path

from storefront.auth.interfaces import SlotBackend
from storefront.core.exceptions import StorageError
from storefront.core.models import CredentialPair, Profile

logger = logging.getLogger(__name__)

ACCESS_SLOT = "access_token"
REFRESH_SLOT = "refresh_token"
PROFILE_SLOT = "profile"
SLOTS = (ACCESS_SLOT, REFRESH_SLOT, PROFILE_SLOT)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class FileSlotBackend(SlotBackend):
    """One JSON file per slot inside a private config directory.

    Writes go to a temporary file in the same directory and are moved into
    place with :func:`os.replace`, so a single slot is never half-written.

    Args:
        directory: Directory holding the slot files.  Created on first
            write.
    """

    def __init__(self, directory: Path):
        self._dir = Path(directory)

    def path(self, slot: str) -> Path:
        """Return the file backing *slot*."""
        return self._dir / f"{slot}.json"

    def get(self, slot: str) -> str | None:
        path = self.path(slot)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, slot: str, value: str) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._dir, prefix=f".{slot}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(value)
            os.chmod(tmp, 0o600)
            os.replace(tmp, self.path(slot))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def delete(self, slot: str) -> None:
        self.path(slot).unlink(missing_ok=True)


class MemorySlotBackend(SlotBackend):
    """Process-local backend.  Nothing survives a restart."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, slot: str) -> str | None:
        with self._lock:
            return self._data.get(slot)

    def set(self, slot: str, value: str) -> None:
        with self._lock:
            self._data[slot] = value

    def delete(self, slot: str) -> None:
        with self._lock:
            self._data.pop(slot, None)


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class CredentialStore:
    """Reads and writes the credential pair and profile as logical units.

    Only the refresh coordinator and the login flow write to the store;
    everything else reads.

    Args:
        backend: The :class:`SlotBackend` that actually persists bytes.
    """

    def __init__(self, backend: SlotBackend):
        self._backend = backend

    @classmethod
    def in_directory(cls, directory: Path) -> "CredentialStore":
        """Return a store backed by files in *directory*."""
        return cls(FileSlotBackend(directory))

    # -------------------------
    # Credential pair
    # -------------------------

    def read(self) -> CredentialPair | None:
        """Load the stored credential pair.

        Returns:
            The stored :class:`CredentialPair`, or ``None`` when nothing is
            stored or the stored records are corrupt, unreadable, or from
            different generations.
        """
        try:
            access = self._backend.get(ACCESS_SLOT)
            refresh = self._backend.get(REFRESH_SLOT)
        except UnicodeDecodeError as exc:
            logger.warning(
                "Discarding corrupt credential record (%s); "
                "a new login is required.",
                exc,
            )
            return None
        except OSError as exc:
            logger.warning("Credential store unreadable: %s", exc)
            return None
        if access is None and refresh is None:
            return None
        try:
            access_rec = json.loads(access)
            refresh_rec = json.loads(refresh)
            if access_rec["generation"] != refresh_rec["generation"]:
                raise ValueError("generation mismatch")
            return CredentialPair(
                access_token=_text(access_rec["token"]),
                refresh_token=_text(refresh_rec["token"]),
                expires_in=_number(access_rec.get("expires_in"), "expires_in"),
                issued_at=_number(access_rec.get("issued_at"), "issued_at") or 0.0,
            )
        except (TypeError, ValueError, KeyError) as exc:
            logger.warning(
                "Discarding corrupt credential record (%s); "
                "a new login is required.",
                exc,
            )
            return None

    def write(self, pair: CredentialPair) -> None:
        """Persist *pair*, replacing the previous one.

        The refresh slot is written last and acts as the commit point.

        Raises:
            StorageError: If the backend is unavailable.
        """
        generation = secrets.token_hex(8)
        access_rec = {
            "token": pair.access_token,
            "generation": generation,
            "expires_in": pair.expires_in,
            "issued_at": pair.issued_at,
        }
        refresh_rec = {"token": pair.refresh_token, "generation": generation}
        try:
            self._backend.set(ACCESS_SLOT, json.dumps(access_rec))
            self._backend.set(REFRESH_SLOT, json.dumps(refresh_rec))
        except OSError as exc:
            raise StorageError(f"Could not persist credentials: {exc}") from exc

    # -------------------------
    # Profile
    # -------------------------

    def read_profile(self) -> Profile | None:
        """Load the cached profile, or ``None`` if absent or corrupt."""
        try:
            raw = self._backend.get(PROFILE_SLOT)
        except UnicodeDecodeError as exc:
            logger.warning("Discarding corrupt profile record (%s).", exc)
            return None
        except OSError as exc:
            logger.warning("Profile slot unreadable: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return Profile(**json.loads(raw))
        except (TypeError, ValueError) as exc:
            logger.warning("Discarding corrupt profile record (%s).", exc)
            return None

    def write_profile(self, profile: Profile) -> None:
        """Persist the cached profile.

        Raises:
            StorageError: If the backend is unavailable.
        """
        try:
            self._backend.set(PROFILE_SLOT, json.dumps(asdict(profile)))
        except OSError as exc:
            raise StorageError(f"Could not persist profile: {exc}") from exc

    # -------------------------
    # Logout
    # -------------------------

    def clear(self) -> None:
        """Remove the credential pair and profile.

        Idempotent and never raises: logout must always succeed locally.
        The refresh slot goes first so that a partial clear can never leave
        a usable pair behind.
        """
        for slot in (REFRESH_SLOT, ACCESS_SLOT, PROFILE_SLOT):
            try:
                self._backend.delete(slot)
            except OSError as exc:
                logger.error("Could not clear %s slot: %s", slot, exc)


def _text(value) -> str:
    if not isinstance(value, str):
        raise ValueError(f"token is not a string: {type(value).__name__}")
    return value


def _number(value, name: str):
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} is not a number: {value!r}")
    return value

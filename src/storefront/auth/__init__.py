"""Authentication layer: credential storage and single-flight refresh."""

from storefront.auth.credentials import (
    CredentialStore,
    FileSlotBackend,
    MemorySlotBackend,
)
from storefront.auth.events import SessionEvents
from storefront.auth.interfaces import SessionObserver, SlotBackend
from storefront.auth.refresh import PendingRequest, RefreshCoordinator

__all__ = [
    "CredentialStore",
    "FileSlotBackend",
    "MemorySlotBackend",
    "PendingRequest",
    "RefreshCoordinator",
    "SessionEvents",
    "SessionObserver",
    "SlotBackend",
]

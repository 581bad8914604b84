"""HTTP client package: the request executor and the authenticated facade."""

from storefront.client.authenticated import AuthenticatedClient, Call
from storefront.client.executor import RequestExecutor, is_auth_expiry

__all__ = ["AuthenticatedClient", "Call", "RequestExecutor", "is_auth_expiry"]

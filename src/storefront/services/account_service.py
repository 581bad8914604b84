"""Service layer for the customer account: login, logout and profile."""

import logging

from storefront.client.authenticated import AuthenticatedClient
from storefront.core.exceptions import ApiError, SessionExpiredError
from storefront.core.models import CredentialPair, Profile, RequestDescriptor

logger = logging.getLogger(__name__)


class AccountService:
    """Login flow and cached-profile access on top of the authenticated client.

    The login endpoint is called without credentials, so a 401 there is a
    wrong password, not an expired session.

    Args:
        client: The :class:`AuthenticatedClient` whose session is managed.
    """

    def __init__(self, client: AuthenticatedClient):
        self.client = client

    def login(self, email: str, password: str) -> Profile:
        """Exchange email and password for a new session.

        Args:
            email: The customer's email address.
            password: The customer's password.

        Returns:
            The logged-in customer's :class:`Profile`.

        Raises:
            ApiError: If the backend rejects the credentials, fails, or
                cannot be reached.
            StorageError: If the new session cannot be persisted.
        """
        descriptor = RequestDescriptor(
            "POST",
            self.client.settings.login_path,
            {"email": email, "password": password},
            authenticated=False,
        )
        payload = self.client.raw(descriptor).unwrap()
        if not isinstance(payload, dict):
            raise ApiError("Malformed login response", 200, payload)

        access = payload.get("accessToken") or payload.get("token")
        refresh = payload.get("refreshToken")
        if not access or not refresh:
            raise ApiError("Login response carried no credentials", 200, payload)
        try:
            profile = Profile.from_payload(payload)
        except ValueError as exc:
            raise ApiError(str(exc), 200, payload) from exc

        expires_in = payload.get("expiresIn")
        pair = CredentialPair(
            access_token=access,
            refresh_token=refresh,
            expires_in=int(expires_in) if isinstance(expires_in, (int, float)) else None,
        )
        self.client.start_session(pair, profile)
        logger.info("Logged in as customer %s.", profile.id)
        return profile

    def logout(self) -> None:
        """End the session locally.  Always succeeds."""
        self.client.end_session()

    def current_profile(self) -> Profile | None:
        """Return the cached profile of the logged-in customer, if any."""
        return self.client.store.read_profile()

    def reload_profile(self) -> Profile:
        """Fetch the customer record again and refresh the cached profile.

        Returns:
            The updated :class:`Profile`.

        Raises:
            SessionExpiredError: If there is no usable session.
            ApiError: If the backend returns an error.
        """
        cached = self.current_profile()
        if cached is None:
            raise SessionExpiredError("No customer is logged in.")
        path = f"{self.client.settings.customer_path}/{cached.id}"
        payload = self.client.get(path).unwrap()
        try:
            profile = Profile.from_payload(payload)
        except (AttributeError, ValueError) as exc:
            raise ApiError("Malformed customer response", 200, payload) from exc
        self.client.store.write_profile(profile)
        return profile

import pytest

from helpers import BASE_URL, FakeBackend, FakeSession

from storefront.auth.credentials import CredentialStore, MemorySlotBackend
from storefront.client.authenticated import AuthenticatedClient
from storefront.client.executor import RequestExecutor
from storefront.config import Settings
from storefront.core.models import CredentialPair


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        api_base_url=BASE_URL,
        refresh_backoff=0.0,
        credentials_dir=tmp_path / "storefront",
    )


@pytest.fixture()
def store():
    return CredentialStore(MemorySlotBackend())


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def logged_in_store(store):
    store.write(CredentialPair(access_token="A1", refresh_token="R1"))
    return store


@pytest.fixture()
def make_client(settings):
    """Return a factory building an AuthenticatedClient over a FakeSession."""
    clients = []

    def _make(routes, store, **kwargs):
        session = FakeSession(routes)
        executor = RequestExecutor(
            settings.api_base_url,
            timeout=settings.request_timeout,
            session=session,
        )
        client = AuthenticatedClient(
            kwargs.pop("settings", settings), store, executor=executor, **kwargs
        )
        clients.append(client)
        return client, session

    yield _make
    for client in clients:
        client.close()

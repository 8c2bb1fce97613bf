import base64
import os

# Settings are read from the environment, so configure it before the app is imported
os.environ.setdefault("JWT_ACCESS_SECRET", "test-access-secret")
os.environ.setdefault("JWT_REFRESH_SECRET", "test-refresh-secret")
os.environ.setdefault("ENCRYPTION_KEY_BASE64", base64.b64encode(b"k" * 32).decode())
os.environ.setdefault("GOOGLE_MAPS_API_KEY", "test-maps-key")
os.environ.setdefault("LLM_OFFLINE_MODE", "false")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.api.routers.trips import get_maps_client  # noqa: E402
from app.core.repository import get_repo  # noqa: E402
from app.main import create_app  # noqa: E402
from tests.fakes import FakeMapsClient, InMemoryRepo, token_from  # noqa: E402


@pytest.fixture
def repo() -> InMemoryRepo:
    return InMemoryRepo()


@pytest.fixture
def maps_client() -> FakeMapsClient:
    return FakeMapsClient()


@pytest.fixture
def app(repo, maps_client):
    application = create_app()
    application.dependency_overrides[get_repo] = lambda: repo
    application.dependency_overrides[get_maps_client] = lambda: maps_client
    return application


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def register_user(client):
    """Register a user and return bearer headers for them."""

    async def _register(email: str, name: str = "Traveler", password: str = "s3cret-pass") -> dict:
        response = await client.post(
            "/auth/register",
            json={"email": email, "name": name, "password": password},
        )
        assert response.status_code == 201, response.text
        client.cookies.clear()
        return {"Authorization": f"Bearer {token_from(response)}"}

    return _register

"""Pytest configuration and fixtures for storage-kit.

HTTP tests run the app built by storage_kit.main.create_app against an
in-memory storage provider; no network or external services are used.
"""

import io

import pytest
from httpx import ASGITransport, AsyncClient
from PIL import Image

from storage_kit.config.settings import Settings
from storage_kit.core.context import StorageContext
from storage_kit.infrastructure.storage import InMemoryStorage, register_default_executors
from storage_kit.main import create_app
from storage_kit.models import FakeOptions, ProviderType, StorageDescriptor


def _encode_image(width: int, height: int, fmt: str = "PNG", mode: str = "RGB") -> bytes:
    color = (30, 120, 200, 128) if mode == "RGBA" else (30, 120, 200)
    image = Image.new(mode, (width, height), color)
    output = io.BytesIO()
    image.save(output, format=fmt)
    return output.getvalue()


@pytest.fixture
def make_image():
    """Factory for encoded test images: make_image(width, height, fmt="PNG", mode="RGB")."""
    return _encode_image


@pytest.fixture
def memory_storage() -> InMemoryStorage:
    return InMemoryStorage(FakeOptions(), name="memory")


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        storage_provider="fake",
        storage_local_path=str(tmp_path / "uploads"),
        max_file_size_mb=1,
        allowed_file_types=".png,.jpg,.txt",
    )


@pytest.fixture
async def storage_context():
    """Storage context with the built-in executors and one default fake provider."""
    context = StorageContext()
    register_default_executors(context.resolver)
    context.add_provider(StorageDescriptor(
        name="memory",
        provider_type=ProviderType.FAKE,
        is_default=True,
        options=FakeOptions(),
    ))
    async with context:
        yield context


@pytest.fixture
async def client(test_settings, storage_context) -> AsyncClient:
    """Async HTTP client against the FastAPI app (ASGI), lifespan included."""
    app = create_app(settings=test_settings, context=storage_context)
    async with app.router.lifespan_context(app):
        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac

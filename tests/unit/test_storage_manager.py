"""Unit tests for the StorageManager facade"""

from dataclasses import dataclass

import pytest

from storage_kit.core.context import StorageContext
from storage_kit.core.storage_manager import StorageManager
from storage_kit.core.uploads import BytesUpload
from storage_kit.exceptions import StorageConfigurationError, StorageNotFoundError, StorageValidationError
from storage_kit.infrastructure.storage import (
    InMemoryStorage,
    build_default_descriptor,
    build_storage_context,
    register_default_executors,
)
from storage_kit.models import FakeOptions, LocalOptions, StorageDescriptor


@dataclass
class Ticket:
    id: str


class _UnknownLengthUpload(BytesUpload):
    def __init__(self, file_name: str, data: bytes):
        super().__init__(file_name, data)
        self.length = None


@pytest.fixture
def manager(storage_context, test_settings) -> StorageManager:
    return StorageManager(storage_context, test_settings)


@pytest.mark.unit
class TestUploadLimits:
    """Test size and extension limits from settings"""

    @pytest.mark.asyncio
    async def test_disallowed_extension(self, manager):
        with pytest.raises(StorageValidationError, match="not allowed"):
            await manager.upload(BytesUpload("script.exe", b"MZ"), "Docs")

    @pytest.mark.asyncio
    async def test_declared_size_over_limit(self, manager):
        with pytest.raises(StorageValidationError, match="too large"):
            await manager.upload(BytesUpload("big.txt", b"x" * (1024 * 1024 + 1)), "Docs")

    @pytest.mark.asyncio
    async def test_streamed_size_over_limit(self, manager, storage_context):
        with pytest.raises(StorageValidationError, match="too large"):
            await manager.upload(_UnknownLengthUpload("big.txt", b"x" * (1024 * 1024 + 1)), "Docs")

        executor = storage_context.resolver.get_live_executor(manager.get_provider().id)
        assert executor.list_files() == []

    @pytest.mark.asyncio
    async def test_no_settings_means_no_limits(self, storage_context):
        manager = StorageManager(storage_context)

        primary, _ = await manager.upload(BytesUpload("tool.exe", b"MZ"), "Bin")

        assert primary.file_extension == ".exe"


@pytest.mark.unit
class TestManagerOperations:
    """Test operations routed through the default provider"""

    @pytest.mark.asyncio
    async def test_upload_read_exists_delete(self, manager, make_image):
        primary, variants = await manager.upload(BytesUpload("pic.png", make_image(600, 600)), "Photos", "Album")

        assert len(variants) == 2
        assert await manager.exists(primary.location)
        assert await manager.read(primary.location) == make_image(600, 600)

        chunks = [chunk async for chunk in await manager.open_stream(primary.location)]
        assert b"".join(chunks) == make_image(600, 600)

        assert await manager.delete(primary.location) is True
        assert not await manager.exists(primary.location)

    @pytest.mark.asyncio
    async def test_upload_without_variants(self, manager, make_image):
        primary, variants = await manager.upload(
            BytesUpload("pic.png", make_image(600, 600)), "Photos", generate_variants=False
        )

        assert variants == []
        assert primary.metadata == {}

    @pytest.mark.asyncio
    async def test_upload_for_entity(self, manager):
        ticket = Ticket(id="T-1")

        primary = await manager.upload_for_entity(ticket, BytesUpload("log.txt", b"boom"), "Support")

        assert primary.location.startswith("Support/Ticket/Others/")
        assert primary.related_entities[0].entity_id == "T-1"

    @pytest.mark.asyncio
    async def test_upload_for_entity_requires_entity(self, manager):
        with pytest.raises(StorageValidationError):
            await manager.upload_for_entity(None, BytesUpload("log.txt", b"boom"), "Support")

    @pytest.mark.asyncio
    async def test_open_stream_missing(self, manager):
        with pytest.raises(StorageNotFoundError):
            await manager.open_stream("Docs/General/Others/missing.txt")

    @pytest.mark.asyncio
    async def test_generate_url(self, manager):
        assert await manager.generate_url("a/b.txt") == "memory://memory/a/b.txt"

    @pytest.mark.asyncio
    async def test_archive_and_unarchive(self, manager):
        primary, _ = await manager.upload(BytesUpload("notes.txt", b"keep"), "Docs")

        assert await manager.archive(primary.location) is True
        assert not await manager.exists(primary.location)
        assert await manager.archive(primary.location) is False

        assert await manager.unarchive(primary.location) is True
        assert await manager.read(primary.location) == b"keep"

    @pytest.mark.asyncio
    async def test_health_check(self, manager):
        assert await manager.health_check() is True


@pytest.mark.unit
class TestProviderSelection:
    """Test provider lookup and options updates"""

    @pytest.mark.asyncio
    async def test_unknown_provider(self, manager):
        with pytest.raises(StorageNotFoundError):
            await manager.read("a.txt", provider_id="missing")

    @pytest.mark.asyncio
    async def test_no_provider_registered(self, test_settings):
        context = StorageContext()
        register_default_executors(context.resolver)
        manager = StorageManager(context, test_settings)

        with pytest.raises(StorageConfigurationError):
            await manager.upload(BytesUpload("a.txt", b"a"), "Docs")

    @pytest.mark.asyncio
    async def test_explicit_provider(self, manager, storage_context, tmp_path):
        disk = storage_context.add_provider(StorageDescriptor(
            name="disk",
            provider_type="local",
            options=LocalOptions(path=str(tmp_path / "disk")),
        ))

        primary, _ = await manager.upload(BytesUpload("a.txt", b"a"), "Docs", provider_id=disk.id)

        assert (tmp_path / "disk" / primary.location).read_bytes() == b"a"
        assert primary.storage_provider == "disk"
        assert len(manager.list_providers()) == 2

    @pytest.mark.asyncio
    async def test_update_options_reaches_live_executor(self, manager, storage_context):
        descriptor = manager.get_provider()
        await manager.exists("warm-up.txt")

        manager.update_provider_options(descriptor.id, {"max_file_size_bytes": 2})

        executor = storage_context.resolver.get_live_executor(descriptor.id)
        assert isinstance(executor, InMemoryStorage)
        assert executor.options.max_file_size_bytes == 2
        with pytest.raises(StorageValidationError):
            await manager.upload(BytesUpload("a.txt", b"abc"), "Docs")

    def test_invalid_options_payload(self, manager):
        descriptor = manager.get_provider()

        with pytest.raises(StorageValidationError):
            manager.update_provider_options(descriptor.id, {"operation_delay_ms": -1})

        assert isinstance(descriptor.options, FakeOptions)
        assert descriptor.options.operation_delay_ms == 0

    def test_update_unknown_provider(self, manager):
        with pytest.raises(StorageNotFoundError):
            manager.update_provider_options("missing", {})


@pytest.mark.unit
class TestBootstrap:
    """Test building the storage context from settings"""

    def test_local_descriptor_from_settings(self, test_settings):
        test_settings.storage_provider = "local"

        descriptor = build_default_descriptor(test_settings)

        assert descriptor.provider_type == "local"
        assert descriptor.is_default is True
        assert isinstance(descriptor.options, LocalOptions)
        assert descriptor.options.path == test_settings.storage_local_path

    def test_s3_requires_bucket(self, test_settings):
        test_settings.storage_provider = "s3"

        with pytest.raises(StorageConfigurationError):
            build_default_descriptor(test_settings)

    def test_unknown_provider_type(self, test_settings):
        test_settings.storage_provider = "ftp"

        with pytest.raises(StorageConfigurationError):
            build_default_descriptor(test_settings)

    @pytest.mark.asyncio
    async def test_build_storage_context(self, test_settings):
        async with build_storage_context(test_settings) as context:
            descriptor = context.registry.get_default()

            assert descriptor.provider_type == "fake"
            assert descriptor.options.max_file_size_bytes == test_settings.max_file_size_bytes
            assert sorted(context.resolver.known_executors) == ["fake", "local", "s3", "sftp"]

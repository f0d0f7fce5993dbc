"""Unit tests for the local filesystem backend"""

import pytest

from storage_kit.core.uploads import BytesUpload, PathUpload
from storage_kit.exceptions import StorageNotFoundError, StorageSecurityError, StorageValidationError
from storage_kit.infrastructure.storage import LocalStorage
from storage_kit.models import LocalOptions


@pytest.fixture
def root(tmp_path):
    return tmp_path / "root"


@pytest.fixture
def storage(root) -> LocalStorage:
    return LocalStorage(LocalOptions(path=str(root), public_base_url="/media/"))


async def _chunks(*parts: bytes):
    for part in parts:
        yield part


@pytest.mark.unit
class TestPathSafety:
    """Test that every location stays under the base path"""

    @pytest.mark.asyncio
    async def test_parent_traversal_rejected_before_writing(self, storage, tmp_path):
        with pytest.raises(StorageSecurityError):
            await storage.write_bytes("../outside.txt", b"x", "text/plain")

        assert not (tmp_path / "outside.txt").exists()

    @pytest.mark.asyncio
    async def test_nested_traversal_rejected(self, storage, tmp_path):
        with pytest.raises(StorageSecurityError):
            await storage.write_bytes("a/b/../../../escape.txt", b"x", "text/plain")

        assert not (tmp_path / "escape.txt").exists()

    @pytest.mark.asyncio
    async def test_absolute_path_rejected(self, storage, tmp_path):
        target = tmp_path / "absolute.txt"

        with pytest.raises(StorageSecurityError):
            await storage.write_bytes(str(target), b"x", "text/plain")

        assert not target.exists()

    @pytest.mark.asyncio
    async def test_traversal_rejected_for_reads_and_deletes(self, storage):
        with pytest.raises(StorageSecurityError):
            await storage.read("../secret")
        with pytest.raises(StorageSecurityError):
            await storage.delete("../secret")
        with pytest.raises(StorageSecurityError):
            await storage.file_exists("../secret")

    @pytest.mark.asyncio
    async def test_empty_location_rejected(self, storage):
        with pytest.raises(StorageValidationError):
            await storage.write_bytes("", b"x", "text/plain")

    @pytest.mark.asyncio
    async def test_hostile_file_name_stays_under_root(self, storage, root):
        upload = BytesUpload("../../evil.txt", b"payload")

        primary = await storage.create(upload, "Docs")

        assert primary.file_name == "evil.txt"
        assert (root / primary.location).read_bytes() == b"payload"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("category", ["../escape", "Users/../../escape"])
    async def test_traversing_category_rejected_before_writing(self, storage, tmp_path, category):
        with pytest.raises(StorageSecurityError):
            await storage.create(BytesUpload("notes.txt", b"payload"), category)

        assert not (tmp_path / "escape").exists()


@pytest.mark.unit
class TestLocalRoundTrip:
    """Test write, read, url and delete on disk"""

    @pytest.mark.asyncio
    async def test_write_stream_counts_bytes(self, storage, root):
        size = await storage.write_stream("a/b/c.bin", _chunks(b"abc", b"", b"defg"), "application/octet-stream")

        assert size == 7
        assert (root / "a/b/c.bin").read_bytes() == b"abcdefg"

    @pytest.mark.asyncio
    async def test_upload_read_delete(self, storage, root):
        primary = await storage.create(BytesUpload("notes.txt", b"hello world"), "Docs", "Ticket")

        assert primary.location.startswith("Docs/Ticket/Others/")
        assert await storage.file_exists(primary.location)
        assert await storage.read(primary.location) == b"hello world"

        assert await storage.delete(primary.location) is True
        assert not await storage.file_exists(primary.location)
        assert not (root / "Docs").exists()
        assert root.exists()

        assert await storage.delete(primary.location) is False

    @pytest.mark.asyncio
    async def test_delete_keeps_non_empty_folders(self, storage, root):
        first = await storage.create(BytesUpload("one.txt", b"1"), "Docs")
        second = await storage.create(BytesUpload("two.txt", b"2"), "Docs")

        await storage.delete(first.location)

        assert (root / second.location).exists()

    @pytest.mark.asyncio
    async def test_path_upload(self, storage, tmp_path):
        source = tmp_path / "source.txt"
        source.write_bytes(b"from disk")

        primary = await storage.create(PathUpload(str(source)), "Imports")

        assert primary.size == len(b"from disk")
        assert await storage.read(primary.location) == b"from disk"

    @pytest.mark.asyncio
    async def test_missing_file_not_found(self, storage):
        with pytest.raises(StorageNotFoundError):
            await storage.read("Docs/General/Others/missing.txt")

    @pytest.mark.asyncio
    async def test_generate_url_uses_public_base(self, storage):
        url = await storage.generate_url("Docs/General/Others/my file.txt")

        assert url == "/media/Docs/General/Others/my%20file.txt"

    @pytest.mark.asyncio
    async def test_health_check_leaves_no_marker(self, storage, root):
        assert await storage.health_check() is True
        assert list(root.iterdir()) == []


@pytest.mark.unit
class TestLocalOptions:
    """Test options handling"""

    def test_base_path_created(self, root):
        LocalStorage(LocalOptions(path=str(root / "nested")))

        assert (root / "nested").is_dir()

    @pytest.mark.asyncio
    async def test_update_options_moves_base_path(self, storage, tmp_path):
        new_root = tmp_path / "moved"

        storage.update_options(LocalOptions(path=str(new_root)))
        await storage.write_bytes("x.txt", b"x", "text/plain")

        assert (new_root / "x.txt").read_bytes() == b"x"


@pytest.mark.unit
class TestLocalArchive:
    """Test moving files in and out of the archive folder"""

    @pytest.mark.asyncio
    async def test_archive_and_restore(self, storage, root):
        primary = await storage.create(BytesUpload("notes.txt", b"keep me"), "Docs")

        assert await storage.archive(primary.location) is True

        assert not await storage.file_exists(primary.location)
        assert (root / "archive" / primary.location).read_bytes() == b"keep me"
        assert not (root / "Docs").exists()

        assert await storage.unarchive(primary.location) is True

        assert await storage.read(primary.location) == b"keep me"
        assert not (root / "archive").exists()

    @pytest.mark.asyncio
    async def test_archive_replaces_earlier_copy(self, storage, root):
        await storage.write_bytes("Docs/a.txt", b"old", "text/plain")
        await storage.archive("Docs/a.txt")
        await storage.write_bytes("Docs/a.txt", b"new", "text/plain")

        assert await storage.archive("Docs/a.txt") is True

        assert (root / "archive/Docs/a.txt").read_bytes() == b"new"

    @pytest.mark.asyncio
    async def test_missing_files_are_not_moved(self, storage):
        assert await storage.archive("Docs/missing.txt") is False
        assert await storage.unarchive("Docs/missing.txt") is False

    @pytest.mark.asyncio
    async def test_archive_traversal_rejected(self, storage):
        with pytest.raises(StorageSecurityError):
            await storage.archive("../secret")
        with pytest.raises(StorageSecurityError):
            await storage.unarchive("../secret")

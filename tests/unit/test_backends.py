"""Tests for provider parsing, the backend registry and the folder backend."""

import asyncio

import pytest

from chunkstore.backends import BackendRegistry, FolderBackend, Provider
from chunkstore.config import AccountConfig, Config
from chunkstore.errors import BackendError, ConfigurationError


# ---------------------------------------------------------------------------
# Provider
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("name,expected", [
    ("gdrive", Provider.GDRIVE),
    ("GoogleDrive", Provider.GDRIVE),
    ("google-drive", Provider.GDRIVE),
    (" Dropbox ", Provider.DROPBOX),
    ("one-drive", Provider.ONEDRIVE),
    ("mega", Provider.MEGA),
    ("ipfs", Provider.IPFS),
    ("directory", Provider.FOLDER),
])
def test_parse_provider(name, expected):
    assert Provider.parse(name) is expected


def test_parse_unknown_provider():
    with pytest.raises(ConfigurationError):
        Provider.parse("floppy")


def test_remote_paths():
    assert Provider.GDRIVE.remote_path("abc") == "distributed-chunks/abc.chunk"
    assert Provider.DROPBOX.remote_path("abc") == "/Apps/DistributedChunks/abc.chunk"
    assert Provider.ONEDRIVE.remote_path("abc") == "DistributedChunks/abc.chunk"
    assert Provider.IPFS.remote_path("abc") == "abc"
    assert Provider.FOLDER.remote_path("abc") == "chunks/abc.chunk"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_registry_lookup(make_backend):
    a = make_backend("a")
    b = make_backend("b", provider=Provider.GDRIVE)
    registry = BackendRegistry([a, b])

    assert registry.get("folder", "a") is a
    assert registry.get(Provider.GDRIVE, "b") is b
    assert registry.get("folder", "b") is None
    assert registry.get("not-a-provider", "a") is None
    assert ("folder", "a") in registry
    assert len(registry) == 2
    assert registry.for_provider("gdrive") == [b]


def test_registry_rejects_duplicates(make_backend):
    registry = BackendRegistry([make_backend("a")])
    with pytest.raises(ConfigurationError):
        registry.register(make_backend("a"))


def test_registry_from_config(tmp_path):
    config = Config(accounts=[
        AccountConfig(name="nas", provider="folder", root=str(tmp_path)),
        AccountConfig(name="g", provider="gdrive"),
        AccountConfig(name="off", provider="folder", root=str(tmp_path), enabled=False),
    ])
    registry = BackendRegistry.from_config(config)

    assert len(registry) == 1
    assert isinstance(registry.get("folder", "nas"), FolderBackend)


# ---------------------------------------------------------------------------
# Folder backend
# ---------------------------------------------------------------------------


def test_folder_upload_download(tmp_path):
    backend = FolderBackend(tmp_path, "nas", folder_name="distributed")

    remote_id = asyncio.run(backend.upload(b"payload", "chunks/abc.chunk"))

    assert remote_id == "chunks/abc.chunk"
    assert (tmp_path / "distributed" / "chunks" / "abc.chunk").read_bytes() == b"payload"
    assert asyncio.run(backend.download(remote_id)) == b"payload"
    assert not list((tmp_path / "distributed" / "chunks").glob("*.tmp"))


def test_folder_absolute_remote_path(tmp_path):
    backend = FolderBackend(tmp_path, "nas")
    remote_id = asyncio.run(backend.upload(b"x", "/Apps/DistributedChunks/abc.chunk"))
    assert remote_id == "Apps/DistributedChunks/abc.chunk"


def test_folder_find_by_name(tmp_path):
    backend = FolderBackend(tmp_path, "nas")
    asyncio.run(backend.upload(b"x", "deep/er/abc.chunk"))

    assert asyncio.run(backend.find_by_name("abc.chunk")) == "deep/er/abc.chunk"
    with pytest.raises(BackendError):
        asyncio.run(backend.find_by_name("missing.chunk"))


def test_folder_download_missing(tmp_path):
    backend = FolderBackend(tmp_path, "nas")
    with pytest.raises(BackendError) as exc:
        asyncio.run(backend.download("chunks/none.chunk"))
    assert exc.value.account == "nas"
    assert not exc.value.transient


def test_folder_rejects_escape(tmp_path):
    backend = FolderBackend(tmp_path / "root", "nas")
    with pytest.raises(BackendError):
        asyncio.run(backend.upload(b"x", "../outside.chunk"))


def test_folder_requires_root():
    with pytest.raises(ConfigurationError):
        FolderBackend("", "nas")

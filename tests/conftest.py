"""Shared pytest fixtures."""

import asyncio
import os
from pathlib import PurePosixPath

import pytest

from chunkstore.backends.base import Provider, StorageBackend
from chunkstore.config import AccountConfig, Config
from chunkstore.errors import BackendError
from chunkstore.file.storage import ChunkStorage


class MemoryBackend(StorageBackend):
    """In-memory backend with failure injection."""

    def __init__(self, account, provider=Provider.FOLDER, fail_upload=False,
                 fail_download=False, corrupt=False, delay=0.0, on_upload=None):
        self.provider = Provider(provider)
        self.account = account
        self.objects = {}
        self.fail_upload = fail_upload
        self.fail_download = fail_download
        self.corrupt = corrupt
        self.delay = delay
        self.on_upload = on_upload
        self.upload_calls = 0
        self.download_calls = 0
        self.lookups = 0

    async def upload(self, data, remote_path):
        self.upload_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_upload:
            raise BackendError("injected upload failure",
                               provider=self.provider.value, account=self.account)
        self.objects[remote_path] = bytes(data)
        if self.on_upload:
            self.on_upload(remote_path)
        return remote_path

    async def download(self, remote_id):
        self.download_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_download or remote_id not in self.objects:
            raise BackendError(f"missing {remote_id}",
                               provider=self.provider.value, account=self.account)
        data = self.objects[remote_id]
        return data[:-1] if self.corrupt else data

    async def find_by_name(self, name):
        self.lookups += 1
        for path in self.objects:
            if PurePosixPath(path).name == name:
                return path
        raise BackendError(f"no object named {name}",
                           provider=self.provider.value, account=self.account)


@pytest.fixture
def make_backend():
    return MemoryBackend


@pytest.fixture
def storage(tmp_path):
    """Chunk storage rooted in tmp_path/chunks."""
    return ChunkStorage(tmp_path / "chunks")


@pytest.fixture
def sample_file(tmp_path):
    """A 10,000-byte file of random content."""
    path = tmp_path / "sample.bin"
    path.write_bytes(os.urandom(10_000))
    return path


@pytest.fixture
def folder_config(tmp_path):
    """Config with two folder accounts, replication 2."""
    return Config(
        chunk_size=1024,
        chunks_dir=tmp_path / "chunks",
        manifest_path=tmp_path / "manifest.json",
        providers=["folder"],
        accounts=[
            AccountConfig(name="a", provider="folder", root=str(tmp_path / "remote-a")),
            AccountConfig(name="b", provider="folder", root=str(tmp_path / "remote-b")),
        ],
        replication_count=2,
    )


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    """Keep CHUNKSTORE_* settings from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("CHUNKSTORE_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def zero_file(tmp_path):
    """64 KiB of zeros: every 4 KiB chunk has the same content and id."""
    path = tmp_path / "zeros.img"
    path.write_bytes(bytes(64 * 4096))
    return path

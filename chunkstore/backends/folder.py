"""
Folder Backend

Stores replicas in a directory: a mounted network share, a folder synced by
a desktop client, or an external disk. The remote id is the object's path
relative to the account folder.
"""

import logging
import uuid
from pathlib import Path, PurePosixPath
from typing import Optional

import aiofiles
import aiofiles.os

from ..errors import BackendError, ConfigurationError
from .base import Provider, StorageBackend

logger = logging.getLogger(__name__)


class FolderBackend(StorageBackend):
    """Filesystem-backed provider account."""

    provider = Provider.FOLDER

    def __init__(self, root: Path, account: str, folder_name: Optional[str] = None):
        if not root:
            raise ConfigurationError(
                "Folder account requires a root directory",
                provider=self.provider.value, account=account,
            )
        self.account = account
        self.base = Path(root) / folder_name if folder_name else Path(root)

    def _resolve(self, remote_id: str) -> Path:
        relative = PurePosixPath(remote_id.lstrip('/'))
        if not relative.parts or '..' in relative.parts:
            raise BackendError(
                f"Invalid remote path: '{remote_id}'",
                provider=self.provider.value, account=self.account,
            )
        return self.base.joinpath(*relative.parts)

    async def upload(self, data: bytes, remote_path: str) -> str:
        target = self._resolve(remote_path)
        temp = target.with_name(f"{target.name}.{uuid.uuid4().hex[:8]}.tmp")
        try:
            await aiofiles.os.makedirs(target.parent, exist_ok=True)
            async with aiofiles.open(temp, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(temp, target)
        except OSError as e:
            raise BackendError(
                f"Write to {target} failed: {e}",
                provider=self.provider.value, account=self.account,
            ) from e

        remote_id = target.relative_to(self.base).as_posix()
        logger.debug(f"Stored {len(data)} bytes at {self.account}:{remote_id}")
        return remote_id

    async def download(self, remote_id: str) -> bytes:
        path = self._resolve(remote_id)
        try:
            async with aiofiles.open(path, 'rb') as f:
                return await f.read()
        except FileNotFoundError as e:
            raise BackendError(
                f"Object not found: {remote_id}",
                provider=self.provider.value, account=self.account,
            ) from e
        except OSError as e:
            raise BackendError(
                f"Read of {remote_id} failed: {e}", transient=True,
                provider=self.provider.value, account=self.account,
            ) from e

    async def find_by_name(self, name: str) -> str:
        if self.base.exists():
            for match in sorted(self.base.rglob(name)):
                if match.is_file():
                    return match.relative_to(self.base).as_posix()

        raise BackendError(
            f"No object named '{name}'",
            provider=self.provider.value, account=self.account,
        )

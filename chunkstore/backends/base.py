"""
Storage Backend Interface

Design Decision: Provider Dispatch
==================================

Options Considered:
1. Open string switch per operation (upload, download, lookup)
   - Every new provider widens several switch statements
2. Capability interface + tagged enum
   - One implementation per provider, selected by (provider, account)
3. Plugin entry points
   - Flexible, but overkill for a handful of providers

Decision: Capability interface selected by a Provider enum
- The core only ever calls upload / download / find_by_name
- Authentication, folder bootstrapping and rate-limit handling stay inside
  each backend
- Backends live in an explicit BackendRegistry built once by the caller,
  never in a module-level client pool
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Remote storage services a chunk can be placed on."""
    GDRIVE = 'gdrive'
    DROPBOX = 'dropbox'
    ONEDRIVE = 'onedrive'
    MEGA = 'mega'
    IPFS = 'ipfs'
    FOLDER = 'folder'
    LOCAL = 'local'  # Sentinel: chunk stays in local storage only

    @classmethod
    def parse(cls, name: str) -> 'Provider':
        """Parse a provider name, accepting common aliases."""
        if not isinstance(name, str):
            raise ConfigurationError(f"Provider name must be a string, got {name!r}")
        key = name.strip().lower()
        provider = _ALIASES.get(key)
        if provider is None:
            raise ConfigurationError(f"Unknown provider: '{name}'")
        return provider

    def remote_path(self, chunk_id: str) -> str:
        """Cloud-side path for a chunk on this provider."""
        if self is Provider.GDRIVE:
            return f"distributed-chunks/{chunk_id}.chunk"
        if self is Provider.DROPBOX:
            return f"/Apps/DistributedChunks/{chunk_id}.chunk"
        if self is Provider.ONEDRIVE:
            return f"DistributedChunks/{chunk_id}.chunk"
        if self is Provider.MEGA:
            return f"chunks/{chunk_id}.chunk"
        if self is Provider.IPFS:
            return chunk_id  # content-addressed
        return f"chunks/{chunk_id}.chunk"


_ALIASES: Dict[str, Provider] = {
    'gdrive': Provider.GDRIVE,
    'googledrive': Provider.GDRIVE,
    'google-drive': Provider.GDRIVE,
    'dropbox': Provider.DROPBOX,
    'onedrive': Provider.ONEDRIVE,
    'one-drive': Provider.ONEDRIVE,
    'mega': Provider.MEGA,
    'ipfs': Provider.IPFS,
    'folder': Provider.FOLDER,
    'directory': Provider.FOLDER,
    'local': Provider.LOCAL,
}


class StorageBackend(ABC):
    """
    One account on one provider.

    All methods raise BackendError on failure; `transient=True` marks
    failures a caller may retry.
    """

    provider: Provider
    account: str

    @abstractmethod
    async def upload(self, data: bytes, remote_path: str) -> str:
        """Store bytes at remote_path; returns the remote id."""

    @abstractmethod
    async def download(self, remote_id: str) -> bytes:
        """Fetch the bytes stored under remote_id."""

    @abstractmethod
    async def find_by_name(self, name: str) -> str:
        """Look up the remote id of an object by its base name."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.provider.value}/{self.account})"


class BackendRegistry:
    """
    Explicit, ordered registry of storage backends.

    Keyed by (provider, account). Constructed once by the caller and passed
    to the uploader and downloader.
    """

    def __init__(self, backends: Optional[List[StorageBackend]] = None):
        self._backends: Dict[Tuple[Provider, str], StorageBackend] = {}
        for backend in backends or []:
            self.register(backend)

    def register(self, backend: StorageBackend):
        key = (Provider(backend.provider), backend.account)
        if key in self._backends:
            raise ConfigurationError(
                f"Backend already registered for {key[0].value}/{key[1]}",
                provider=key[0].value, account=key[1],
            )
        self._backends[key] = backend
        logger.debug(f"Registered backend {backend!r}")

    def get(self, provider, account: str) -> Optional[StorageBackend]:
        """Backend for (provider, account), or None if not registered."""
        try:
            provider = Provider(provider)
        except ValueError:
            return None
        return self._backends.get((provider, account))

    def for_provider(self, provider) -> List[StorageBackend]:
        """All backends of one provider, in registration order."""
        provider = Provider(provider)
        return [b for (p, _), b in self._backends.items() if p == provider]

    def __contains__(self, key) -> bool:
        provider, account = key
        return self.get(provider, account) is not None

    def __len__(self) -> int:
        return len(self._backends)

    def __iter__(self) -> Iterator[StorageBackend]:
        return iter(self._backends.values())

    @classmethod
    def from_config(cls, config) -> 'BackendRegistry':
        """
        Build backends for every enabled account that has an implementation.

        Accounts on providers without an implementation are left out; their
        replicas fail as "no backend registered" at upload time.
        """
        from .folder import FolderBackend

        registry = cls()
        for account in config.enabled_accounts():
            provider = Provider.parse(account.provider)
            if provider is Provider.FOLDER:
                registry.register(FolderBackend(
                    root=account.root,
                    account=account.name,
                    folder_name=account.folder_name,
                ))
            else:
                logger.warning(f"No backend implementation for provider '{provider.value}' "
                               f"(account '{account.name}'); its replicas will be skipped")
        return registry

"""
Backends Module - Remote Storage Providers

Capability interface, provider enum and the explicit backend registry.
"""

from .base import Provider, StorageBackend, BackendRegistry
from .folder import FolderBackend

__all__ = [
    'Provider',
    'StorageBackend',
    'BackendRegistry',
    'FolderBackend',
]

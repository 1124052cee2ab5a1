"""
chunkstore - Split, encrypt and distribute files as verifiable chunks.
"""

from .store import ChunkStore
from .config import Config, AccountConfig, load_config
from .crypto import Cipher, derive_key
from .file import (
    FileChunker, ChunkStorage, ChunkRecord, Destination, DistributionMode, Manifest,
    create_manifest, serialize, deserialize, update_distribution,
)
from .transfer import DistributionStrategy, LoadBalancing, Target, ChunkUploader, ChunkDownloader
from .backends import Provider, StorageBackend, BackendRegistry, FolderBackend
from .errors import (
    ChunkStoreError, IOFailure, EncryptionFailure, AuthenticationFailure, MalformedCiphertext,
    IntegrityFailure, MalformedManifest, ChunkUnavailable, ConfigurationError, BackendError,
    ReplicationError,
)

__version__ = '1.0.0'

__all__ = [
    'ChunkStore',
    'Config',
    'AccountConfig',
    'load_config',
    'Cipher',
    'derive_key',
    'FileChunker',
    'ChunkStorage',
    'ChunkRecord',
    'Destination',
    'DistributionMode',
    'Manifest',
    'create_manifest',
    'serialize',
    'deserialize',
    'update_distribution',
    'DistributionStrategy',
    'LoadBalancing',
    'Target',
    'ChunkUploader',
    'ChunkDownloader',
    'Provider',
    'StorageBackend',
    'BackendRegistry',
    'FolderBackend',
    'ChunkStoreError',
    'IOFailure',
    'EncryptionFailure',
    'AuthenticationFailure',
    'MalformedCiphertext',
    'IntegrityFailure',
    'MalformedManifest',
    'ChunkUnavailable',
    'ConfigurationError',
    'BackendError',
    'ReplicationError',
]

"""
File Module - Chunking, Hashing, Manifests and Local Storage

This module handles file operations for the chunk store.
"""

from .chunker import FileChunker, RawChunk, CHUNK_SIZE, hash_chunk, chunk_id_for, verify_chunk
from .manifest import (
    ChunkRecord, Destination, DistributionMode, Manifest,
    create_manifest, serialize, deserialize, update_distribution,
)
from .storage import ChunkStorage, StorageStats

__all__ = [
    'FileChunker',
    'RawChunk',
    'CHUNK_SIZE',
    'hash_chunk',
    'chunk_id_for',
    'verify_chunk',
    'ChunkRecord',
    'Destination',
    'DistributionMode',
    'Manifest',
    'create_manifest',
    'serialize',
    'deserialize',
    'update_distribution',
    'ChunkStorage',
    'StorageStats',
]

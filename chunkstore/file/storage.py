"""
Chunk Storage

Design Decision: Storage Strategy
==================================

Options Considered:
1. Single directory with id-named files
   - Simple, matches what gets uploaded one object per chunk
2. Two-level directory (first 2 chars of id)
   - Fewer files per directory, harder to hand to another tool
3. SQLite blob storage
   - Single file, but chunks can no longer be copied around individually

Decision: Single caller-supplied directory, `<id>.chunk` per chunk
- The directory can be moved, synced or uploaded as-is
- Writes are atomic (temp file, then rename)
- Cleanup only ever touches `*.chunk` files

Storage Layout:
```
chunks/
├── 3f2a9c1be07d4410.chunk
├── 9b0e55d2a1c87f03.chunk
└── ...
manifest.json          # anywhere, caller-supplied
```
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import aiofiles
import aiofiles.os

from ..crypto.cipher import Cipher
from ..errors import IOFailure
from .chunker import CHUNK_EXTENSION, CHUNK_SIZE, FileChunker
from .manifest import ChunkRecord, Manifest, create_manifest

logger = logging.getLogger(__name__)


@dataclass
class StorageStats:
    """Statistics about stored chunks."""
    total_chunks: int
    total_bytes: int


class ChunkStorage:
    """
    Local storage for chunk files.

    Provides:
    - Chunk storage/retrieval by id
    - Splitting a file into stored chunks (with optional encryption)
    - File reassembly from stored chunks
    - Cleanup and statistics
    """

    def __init__(self, chunks_dir: Path):
        """
        Initialize chunk storage.

        Args:
            chunks_dir: Directory holding the chunk files
        """
        self.chunks_dir = Path(chunks_dir)

    def _ensure_directory(self):
        try:
            self.chunks_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot create chunk directory {self.chunks_dir}: {e}") from e

    def chunk_path(self, chunk_id: str) -> Path:
        """Get filesystem path for a chunk."""
        return self.chunks_dir / f"{chunk_id}{CHUNK_EXTENSION}"

    # === Chunk Operations ===

    async def store_chunk(self, chunk_id: str, data: bytes) -> Path:
        """
        Store a chunk's bytes atomically.

        Each writer uses its own temp file, so concurrent stores of the same
        id (repeated content) cannot collide.

        Returns:
            Path of the stored chunk
        """
        self._ensure_directory()
        chunk_path = self.chunk_path(chunk_id)
        temp_path = chunk_path.with_name(f"{chunk_path.name}.{uuid.uuid4().hex[:8]}.tmp")

        try:
            async with aiofiles.open(temp_path, 'wb') as f:
                await f.write(data)
            await aiofiles.os.replace(temp_path, chunk_path)
        except OSError as e:
            try:
                await aiofiles.os.remove(temp_path)
            except OSError:
                logger.debug(f"Could not remove temp file {temp_path}")
            raise IOFailure(f"Cannot write chunk file {chunk_path}: {e}", chunk_id=chunk_id) from e

        return chunk_path

    async def read_chunk(self, record: ChunkRecord) -> bytes:
        """
        Read a chunk's stored bytes.

        Raises:
            IOFailure: the chunk file is missing or unreadable
        """
        chunk_path = self.chunk_path(record.id)
        try:
            async with aiofiles.open(chunk_path, 'rb') as f:
                return await f.read()
        except OSError as e:
            raise IOFailure(
                f"Cannot read chunk file {chunk_path}: {e}",
                chunk_id=record.id, index=record.index,
            ) from e

    def has_chunk(self, chunk_id: str) -> bool:
        """Check if a chunk exists in storage."""
        return self.chunk_path(chunk_id).exists()

    async def delete_chunk(self, chunk_id: str) -> bool:
        """Delete a chunk from storage."""
        chunk_path = self.chunk_path(chunk_id)

        if chunk_path.exists():
            await aiofiles.os.remove(chunk_path)
            return True

        return False

    def missing_chunks(self, manifest: Manifest) -> List[ChunkRecord]:
        """Chunk records with no local file."""
        return [c for c in manifest.sorted_chunks() if not self.has_chunk(c.id)]

    # === File Operations ===

    async def store_file(self, file_path: Path, cipher: Optional[Cipher] = None,
                         chunk_size: int = CHUNK_SIZE,
                         on_chunk: Optional[Callable[[ChunkRecord], None]] = None) -> Manifest:
        """
        Split a file into chunks, encrypt them if asked, and store them.

        Args:
            file_path: Path to the file to split
            cipher: Cipher for the chunks (disabled when omitted)
            chunk_size: Size of each chunk
            on_chunk: Called with each record once its chunk file is written

        Returns:
            The file's manifest, in `local` mode
        """
        chunker = FileChunker(chunk_size=chunk_size)
        cipher = cipher or Cipher.disabled()
        file_path = Path(file_path)

        records: List[ChunkRecord] = []
        async for chunk in chunker.split_file(file_path):
            payload = cipher.encrypt(chunk.data)
            await self.store_chunk(chunk.chunk_id, payload)

            record = ChunkRecord(
                id=chunk.chunk_id,
                content_hash=chunk.content_hash,
                index=chunk.index,
                encrypted=cipher.enabled,
                size=len(payload),
            )
            records.append(record)
            logger.debug(f"Stored chunk {chunk.index} ({chunk.chunk_id}, {len(payload)} bytes)")
            if on_chunk:
                on_chunk(record)

        manifest = create_manifest(
            records,
            original_name=file_path.name,
            encrypted=cipher.enabled,
            kdf=cipher.kdf if cipher.enabled else None,
            chunk_size=chunk_size,
        )
        logger.info(f"Split {file_path.name} into {manifest.chunk_count} chunks "
                    f"({manifest.total_size:,} bytes stored)")
        return manifest

    async def reassemble_file(self, manifest: Manifest, output_path: Path,
                              cipher: Optional[Cipher] = None) -> Path:
        """
        Reassemble a file from its stored chunks.

        The encryption intent is checked before any chunk file is opened.

        Returns:
            Path to the reassembled file
        """
        cipher = cipher or Cipher.disabled()
        manifest.check_intent(decrypt=cipher.enabled)

        chunker = FileChunker(chunk_size=manifest.chunk_size or CHUNK_SIZE)
        return await chunker.assemble(manifest.chunks, self.read_chunk, output_path, cipher)

    # === Maintenance ===

    def cleanup_chunks(self) -> int:
        """
        Remove all chunk files from the directory.

        Returns:
            Number of chunk files removed
        """
        if not self.chunks_dir.exists():
            return 0

        removed = 0
        try:
            for entry in self.chunks_dir.iterdir():
                if entry.is_file() and entry.suffix == CHUNK_EXTENSION:
                    entry.unlink()
                    removed += 1
        except OSError as e:
            raise IOFailure(f"Failed to clean up {self.chunks_dir}: {e}") from e

        logger.info(f"Cleaned up {removed} chunk files")
        return removed

    def get_stats(self) -> StorageStats:
        """Get storage statistics."""
        total_chunks = 0
        total_bytes = 0

        if self.chunks_dir.exists():
            for entry in self.chunks_dir.glob(f"*{CHUNK_EXTENSION}"):
                total_chunks += 1
                total_bytes += entry.stat().st_size

        return StorageStats(total_chunks=total_chunks, total_bytes=total_bytes)

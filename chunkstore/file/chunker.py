"""
File Chunker

Design Decision: Chunk Size
===========================

Options Considered:
| Size    | Pros                          | Cons                           |
|---------|-------------------------------|--------------------------------|
| 256KB   | Fine-grained                  | Many objects per remote store  |
| 1MB     | Good balance for object APIs  | -                              |
| 8MB     | Very low per-object overhead  | Large memory per worker        |

Decision: 1MB (1,048,576 bytes) default, configurable
- One chunk buffer per in-flight worker bounds memory use
- Small enough to spread one file across many accounts

Chunking Strategy: Fixed-Size
- Deterministic: same input and size always give the same chunks
- The last chunk may be short, it is never padded
- Chunk id = first 8 bytes of the plaintext SHA-256, as 16 hex chars

Assembly:
- Chunks are consumed strictly by index
- Each one is decrypted, re-hashed and compared with its recorded hash
- Output goes to a `.partial` file that is renamed only once every chunk
  verified, so a failed assembly never leaves a plausible-looking file
"""

import hashlib
import logging
from pathlib import Path
from typing import AsyncIterator, Awaitable, BinaryIO, Callable, Iterable, Iterator, NamedTuple

import aiofiles
import aiofiles.os

from ..crypto.cipher import Cipher
from ..errors import ConfigurationError, EncryptionFailure, IntegrityFailure, IOFailure
from .manifest import ChunkRecord

logger = logging.getLogger(__name__)

# Chunk size: 1MB
CHUNK_SIZE = 1024 * 1024

# Bytes of the content hash used for the chunk id
CHUNK_ID_BYTES = 8

CHUNK_EXTENSION = '.chunk'
PARTIAL_SUFFIX = '.partial'

# fetch(record) -> stored chunk bytes
ChunkFetcher = Callable[[ChunkRecord], Awaitable[bytes]]


def hash_chunk(data: bytes) -> str:
    """SHA-256 of chunk bytes as hex."""
    return hashlib.sha256(data).hexdigest()


def chunk_id_for(content_hash: str) -> str:
    """Fixed-width chunk id taken from the content hash prefix."""
    return content_hash[:CHUNK_ID_BYTES * 2]


def verify_chunk(record: ChunkRecord, plaintext: bytes):
    """Raise IntegrityFailure when plaintext does not match the record."""
    actual = hash_chunk(plaintext)
    if actual != record.content_hash:
        raise IntegrityFailure(
            f"Hash mismatch: expected {record.content_hash[:16]}..., got {actual[:16]}...",
            chunk_id=record.id, index=record.index,
        )


class RawChunk(NamedTuple):
    """One plaintext chunk produced by a split."""
    index: int
    data: bytes
    content_hash: str

    @property
    def chunk_id(self) -> str:
        return chunk_id_for(self.content_hash)


class FileChunker:
    """
    Splits streams into fixed-size chunks and reassembles them.

    Features:
    - Lazy split, one chunk buffer in memory
    - SHA-256 hash for each chunk
    - Async file reading and writing
    - Hash-verified, all-or-nothing assembly
    """

    def __init__(self, chunk_size: int = CHUNK_SIZE):
        if not isinstance(chunk_size, int) or chunk_size <= 0:
            raise ConfigurationError(f"Chunk size must be a positive integer, got {chunk_size!r}")
        self.chunk_size = chunk_size

    def get_chunk_count(self, file_size: int) -> int:
        """Calculate number of chunks for a file of given size."""
        return (file_size + self.chunk_size - 1) // self.chunk_size

    def split(self, source: BinaryIO) -> Iterator[RawChunk]:
        """
        Split a binary stream into chunks.

        Yields:
            RawChunk(index, data, content_hash), indices 0..N-1
        """
        index = 0
        while True:
            try:
                data = source.read(self.chunk_size)
            except OSError as e:
                raise IOFailure(f"Read failed at chunk {index}: {e}", index=index) from e

            if not data:
                break

            yield RawChunk(index, data, hash_chunk(data))
            index += 1

    async def split_file(self, file_path: Path) -> AsyncIterator[RawChunk]:
        """
        Split a file into chunks (async version).

        Yields:
            RawChunk(index, data, content_hash) tuples
        """
        file_path = Path(file_path)
        index = 0
        try:
            async with aiofiles.open(file_path, 'rb') as f:
                while True:
                    try:
                        data = await f.read(self.chunk_size)
                    except OSError as e:
                        raise IOFailure(f"Read failed at chunk {index}: {e}", index=index) from e

                    if not data:
                        break

                    yield RawChunk(index, data, hash_chunk(data))
                    index += 1
        except FileNotFoundError as e:
            raise IOFailure(f"File not found: {file_path}") from e
        except IsADirectoryError as e:
            raise IOFailure(f"Not a file: {file_path}") from e
        except PermissionError as e:
            raise IOFailure(f"Permission denied: {file_path}") from e

    async def iter_plaintext(self, records: Iterable[ChunkRecord], fetch: ChunkFetcher,
                             cipher: Cipher) -> AsyncIterator[bytes]:
        """
        Yield verified plaintext for each chunk, in index order.

        Raises:
            IntegrityFailure: a chunk's plaintext hash does not match
            EncryptionFailure: a chunk failed to decrypt
        """
        for record in sorted(records, key=lambda r: r.index):
            stored = await fetch(record)

            if record.encrypted:
                try:
                    plaintext = cipher.decrypt(stored)
                except EncryptionFailure as e:
                    raise type(e)(e.message, chunk_id=record.id, index=record.index) from e
            else:
                plaintext = stored

            verify_chunk(record, plaintext)
            logger.debug(f"Verified chunk {record.index} ({record.id}, {len(plaintext)} bytes)")
            yield plaintext

    async def assemble(self, records: Iterable[ChunkRecord], fetch: ChunkFetcher,
                       output_path: Path, cipher: Cipher) -> Path:
        """
        Reassemble chunks into a file.

        Args:
            records: Chunk records (any order)
            fetch: Async callable returning the stored bytes of a record
            output_path: Final file location
            cipher: Cipher used to decrypt encrypted chunks

        Returns:
            Path to the reassembled file
        """
        output_path = Path(output_path)
        temp_path = output_path.with_name(output_path.name + PARTIAL_SUFFIX)

        try:
            output_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise IOFailure(f"Cannot create output directory {output_path.parent}: {e}") from e

        written = 0
        try:
            async with aiofiles.open(temp_path, 'wb') as out:
                async for plaintext in self.iter_plaintext(records, fetch, cipher):
                    await out.write(plaintext)
                    written += len(plaintext)
            await aiofiles.os.replace(temp_path, output_path)
        except OSError as e:
            await _discard(temp_path)
            raise IOFailure(f"Cannot write {output_path}: {e}") from e
        except BaseException:
            await _discard(temp_path)
            raise

        logger.info(f"Assembled {output_path} ({written:,} bytes)")
        return output_path


async def _discard(path: Path):
    """Remove a partial output file if present."""
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Could not remove partial output {path}: {e}")

"""
File Manifest

Design Decision: Manifest Structure
====================================

The manifest is the authoritative description of how one file was
decomposed. It contains:
- File identification (original name, split chunk size, creation time)
- Chunk records (content hash, index, stored size, encryption flag)
- Where each chunk lives (one destination per replica)
- Key derivation parameters when the chunks are encrypted

Options Considered for Manifest Format:
1. JSON - Human readable, self-describing, inspectable without this code
2. Protocol Buffers - Compact, typed, needs the schema to read
3. Custom binary - Most compact, opaque

Decision: JSON with stable snake_case field names
- External tooling can inspect a manifest with `jq`
- Validated on read through a pydantic document model
- `total_size` and `chunk_count` are written for readers but always
  recomputed from the chunk list, never trusted when read back

Distribution Mode:
- local: no chunk has a destination yet
- hybrid: some chunks have destinations, or an upload pass was incomplete
- cloud: an upload pass completed and every chunk has a destination
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError

from ..crypto.cipher import KdfParams
from ..errors import ConfigurationError, IOFailure, MalformedManifest

logger = logging.getLogger(__name__)

MANIFEST_VERSION = 1


def utc_now() -> str:
    """Current time as an ISO-8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat(timespec='seconds')


class DistributionMode(str, Enum):
    LOCAL = 'local'
    CLOUD = 'cloud'
    HYBRID = 'hybrid'


@dataclass(frozen=True)
class Destination:
    """One stored replica of a chunk."""
    provider: str
    remote_path: str
    remote_id: str = ""
    account: str = ""

    def to_dict(self) -> Dict:
        return {
            'provider': self.provider,
            'remote_path': self.remote_path,
            'remote_id': self.remote_id,
            'account': self.account,
        }


@dataclass
class ChunkRecord:
    """Information about a single stored chunk."""
    id: str
    content_hash: str  # SHA-256 of the plaintext, hex
    index: int
    encrypted: bool
    size: int  # Stored (possibly encrypted) size in bytes
    destinations: List[Destination] = field(default_factory=list)
    uploaded_at: Optional[str] = None

    @property
    def filename(self) -> str:
        return f"{self.id}.chunk"

    def has_destination(self, provider: str, account: str) -> bool:
        return any(d.provider == provider and d.account == account
                   for d in self.destinations)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'content_hash': self.content_hash,
            'index': self.index,
            'encrypted': self.encrypted,
            'size': self.size,
            'destinations': [d.to_dict() for d in self.destinations],
            'uploaded_at': self.uploaded_at,
        }


@dataclass
class Manifest:
    """
    Complete metadata for one split file.

    Chunks are kept sorted by index; `total_size` and `chunk_count` are
    derived from them and cannot drift.
    """
    original_name: str
    chunks: List[ChunkRecord]
    encrypted: bool = False
    created_at: str = field(default_factory=utc_now)
    distribution_mode: DistributionMode = DistributionMode.LOCAL
    chunk_size: int = 0
    kdf: Optional[KdfParams] = None

    def __post_init__(self):
        self.chunks.sort(key=lambda c: c.index)
        self.distribution_mode = DistributionMode(self.distribution_mode)

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def total_size(self) -> int:
        return sum(c.size for c in self.chunks)

    def sorted_chunks(self) -> List[ChunkRecord]:
        return sorted(self.chunks, key=lambda c: c.index)

    def get_chunk(self, index: int) -> Optional[ChunkRecord]:
        """Get chunk record by index."""
        for chunk in self.chunks:
            if chunk.index == index:
                return chunk
        return None

    def pending_chunks(self) -> List[ChunkRecord]:
        """Chunks that have no destination yet."""
        return [c for c in self.sorted_chunks() if not c.destinations]

    def check_intent(self, decrypt: bool):
        """
        Fail fast when the caller's decrypt intent disagrees with the manifest.

        Must be called before any chunk I/O.
        """
        if self.encrypted and not decrypt:
            raise ConfigurationError(
                f"'{self.original_name}' was encrypted but no decryption key was provided"
            )
        if not self.encrypted and decrypt:
            raise ConfigurationError(
                f"'{self.original_name}' was not encrypted but a decryption key was provided"
            )

    def refresh_distribution_mode(self, pass_complete: bool = False) -> DistributionMode:
        """
        Recompute the distribution mode from the chunk destinations.

        Args:
            pass_complete: True when an upload pass over every chunk finished
                           without being cancelled
        """
        placed = sum(1 for c in self.chunks if c.destinations)
        if placed == 0:
            self.distribution_mode = DistributionMode.LOCAL
        elif pass_complete and placed == len(self.chunks):
            self.distribution_mode = DistributionMode.CLOUD
        else:
            self.distribution_mode = DistributionMode.HYBRID
        return self.distribution_mode

    def to_dict(self) -> Dict:
        """Serialize to dictionary."""
        return {
            'version': MANIFEST_VERSION,
            'original_name': self.original_name,
            'created_at': self.created_at,
            'encrypted': self.encrypted,
            'kdf': self.kdf.to_dict() if self.kdf else None,
            'chunk_size': self.chunk_size,
            'total_size': self.total_size,
            'chunk_count': self.chunk_count,
            'distribution_mode': self.distribution_mode.value,
            'chunks': [c.to_dict() for c in self.sorted_chunks()],
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'Manifest':
        """Deserialize from dictionary, validating structure."""
        try:
            doc = ManifestDocument.model_validate(data)
        except ValidationError as e:
            raise MalformedManifest(f"Invalid manifest: {e.error_count()} error(s): {e}") from e

        chunks = [
            ChunkRecord(
                id=c.id,
                content_hash=c.content_hash,
                index=c.index,
                encrypted=c.encrypted,
                size=c.size,
                destinations=[Destination(**d.model_dump()) for d in c.destinations],
                uploaded_at=c.uploaded_at,
            )
            for c in doc.chunks
        ]
        _check_indices(chunks)

        mixed = [c for c in chunks if c.encrypted != doc.encrypted]
        if mixed:
            raise MalformedManifest(
                f"Chunk encryption flag disagrees with manifest (encrypted={doc.encrypted})",
                chunk_id=mixed[0].id, index=mixed[0].index,
            )
        if doc.encrypted and doc.kdf is None:
            raise MalformedManifest("Encrypted manifest has no key derivation parameters")

        if doc.chunk_count is not None and doc.chunk_count != len(chunks):
            logger.debug(f"Ignoring stored chunk_count={doc.chunk_count}, "
                         f"manifest has {len(chunks)} chunks")

        try:
            kdf = KdfParams.from_dict(doc.kdf.model_dump()) if doc.kdf else None
        except ValueError as e:
            raise MalformedManifest(f"Invalid key derivation salt: {e}") from e

        return cls(
            original_name=doc.original_name,
            chunks=chunks,
            encrypted=doc.encrypted,
            created_at=doc.created_at,
            distribution_mode=DistributionMode(doc.distribution_mode),
            chunk_size=doc.chunk_size,
            kdf=kdf,
        )

    def to_json(self, indent: int = 2) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'Manifest':
        """Deserialize from JSON string."""
        try:
            data = json.loads(json_str)
        except json.JSONDecodeError as e:
            raise MalformedManifest(f"Manifest is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise MalformedManifest("Manifest must be a JSON object")
        return cls.from_dict(data)

    def save(self, path: Path):
        """Save manifest to a file."""
        path = Path(path)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(serialize(self))
        except OSError as e:
            raise IOFailure(f"Cannot write manifest {path}: {e}") from e

    @classmethod
    def load(cls, path: Path) -> 'Manifest':
        """Load manifest from a file."""
        path = Path(path)
        try:
            data = path.read_bytes()
        except OSError as e:
            raise IOFailure(f"Cannot read manifest {path}: {e}") from e
        return deserialize(data)


# === Document schema ===

class DestinationDocument(BaseModel):
    provider: str = Field(min_length=1)
    remote_path: str
    remote_id: str = ""
    account: str = ""


class ChunkDocument(BaseModel):
    id: str = Field(min_length=1)
    content_hash: str = Field(pattern=r'^[0-9a-f]{64}$')
    index: int = Field(ge=0)
    encrypted: bool
    size: int = Field(ge=0)
    destinations: List[DestinationDocument] = Field(default_factory=list)
    uploaded_at: Optional[str] = None


class KdfDocument(BaseModel):
    algorithm: str = 'scrypt'
    salt: str = Field(min_length=2)
    n: int = Field(gt=1)
    r: int = Field(ge=1)
    p: int = Field(ge=1)


class ManifestDocument(BaseModel):
    version: int = MANIFEST_VERSION
    original_name: str
    created_at: str
    encrypted: bool
    kdf: Optional[KdfDocument] = None
    chunk_size: int = Field(default=0, ge=0)
    total_size: Optional[int] = None
    chunk_count: Optional[int] = None
    distribution_mode: Literal['local', 'cloud', 'hybrid'] = 'local'
    chunks: List[ChunkDocument]


def _check_indices(chunks: Iterable[ChunkRecord]):
    """Indices must be exactly 0..N-1."""
    indices = sorted(c.index for c in chunks)
    if indices != list(range(len(indices))):
        seen = set()
        for i in indices:
            if i in seen:
                raise MalformedManifest("Duplicate chunk index", index=i)
            seen.add(i)
        missing = sorted(set(range(len(indices))) - seen)
        raise MalformedManifest(
            f"Chunk indices are not contiguous (missing {missing[:5]})",
            index=missing[0] if missing else None,
        )


# === Operations ===

def create_manifest(chunks: List[ChunkRecord], original_name: str, encrypted: bool,
                    kdf: Optional[KdfParams] = None, chunk_size: int = 0) -> Manifest:
    """
    Create the manifest for a freshly split file.

    Args:
        chunks: Chunk records produced by the split
        original_name: Base name of the source file
        encrypted: Whole-file encryption flag
        kdf: Key derivation parameters (required when encrypted)
        chunk_size: Split size in bytes

    Returns:
        Manifest in `local` distribution mode
    """
    mixed = [c for c in chunks if c.encrypted != encrypted]
    if mixed:
        raise ConfigurationError(
            f"Chunk encryption flag disagrees with manifest (encrypted={encrypted})",
            chunk_id=mixed[0].id, index=mixed[0].index,
        )
    if encrypted and kdf is None:
        raise ConfigurationError("Encrypted manifest requires key derivation parameters")
    try:
        _check_indices(chunks)
    except MalformedManifest as e:
        raise ConfigurationError(e.message, index=e.index) from e

    return Manifest(
        original_name=original_name,
        chunks=list(chunks),
        encrypted=encrypted,
        kdf=kdf,
        chunk_size=chunk_size,
    )


def serialize(manifest: Manifest) -> bytes:
    return manifest.to_json(indent=2).encode('utf-8')


def deserialize(data: bytes) -> Manifest:
    try:
        text = data.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedManifest(f"Manifest is not UTF-8: {e}") from e
    return Manifest.from_json(text)


def update_distribution(manifest: Manifest, chunk_index: int,
                        destination: Destination) -> Manifest:
    """
    Record a successful replica for a chunk.

    Never touches id, content_hash or index.
    """
    chunk = manifest.get_chunk(chunk_index)
    if chunk is None:
        raise ConfigurationError("No chunk with this index in manifest", index=chunk_index)

    if destination not in chunk.destinations:
        chunk.destinations.append(destination)
    chunk.uploaded_at = utc_now()

    if manifest.distribution_mode == DistributionMode.LOCAL:
        manifest.distribution_mode = DistributionMode.HYBRID

    return manifest

"""
Chunk Store - Main Controller

This is the main entry point that orchestrates all components:
- Chunk engine and cipher for split and assembly
- Manifest persistence
- Distribution strategy and uploader for pushing chunks out
- Downloader for pulling chunks back from recorded destinations
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from .backends.base import BackendRegistry
from .config import Config
from .crypto.cipher import Cipher
from .errors import ReplicationError
from .file.chunker import FileChunker
from .file.manifest import DistributionMode, Manifest
from .file.storage import ChunkStorage
from .transfer.downloader import ChunkDownloader
from .transfer.progress import ProgressCallback, TransferPhase, TransferProgress
from .transfer.uploader import ChunkUploader

logger = logging.getLogger(__name__)


class ChunkStore:
    """
    Split, distribute and reassemble one file at a time.

    Combines all components into a unified interface:
    - split(file_path): chunk (and encrypt) a file into local storage
    - upload(): push pending chunks to their destinations
    - download(): fetch missing chunks from recorded destinations
    - assemble(output_path): verify and rebuild the original file
    """

    def __init__(self, config: Optional[Config] = None,
                 registry: Optional[BackendRegistry] = None):
        """
        Initialize a chunk store.

        Args:
            config: Configuration (uses defaults if not provided)
            registry: Storage backends; built from the config if not provided
        """
        self.config = config or Config()
        self.registry = registry if registry is not None else BackendRegistry.from_config(self.config)
        self.storage = ChunkStorage(self.config.chunks_dir)
        self.manifest_path = Path(self.config.manifest_path)

        self.uploader = ChunkUploader(
            registry=self.registry,
            strategy=self.config.build_strategy(),
            max_concurrent=self.config.max_concurrent_transfers,
            timeout=self.config.transfer_timeout,
            fail_on_replica_error=self.config.fail_on_replica_error,
        )
        self.downloader = ChunkDownloader(
            registry=self.registry,
            max_concurrent=self.config.max_concurrent_transfers,
            timeout=self.config.transfer_timeout,
        )

    def load_manifest(self) -> Manifest:
        return Manifest.load(self.manifest_path)

    # === File Operations ===

    async def split(self, file_path: Path, password: Optional[str] = None,
                    progress_callback: ProgressCallback = None) -> Manifest:
        """
        Split a file into local chunks and write its manifest.

        Args:
            file_path: File to split
            password: Encrypt chunks with a key derived from this password
            progress_callback: Optional callback, one update per stored chunk

        Returns:
            The new manifest
        """
        file_path = Path(file_path)
        logger.info(f"Splitting {file_path.name} (chunk size {self.config.chunk_size:,} bytes"
                    f"{', encrypted' if password is not None else ''})")

        cipher = Cipher.from_password(password) if password is not None else Cipher.disabled()

        on_chunk = None
        if progress_callback:
            try:
                file_size = file_path.stat().st_size
            except OSError:
                # store_file raises the proper IOFailure
                file_size = 0
            total = FileChunker(self.config.chunk_size).get_chunk_count(file_size)
            progress = TransferProgress('split', total, phase=TransferPhase.TRANSFERRING)
            progress_callback(progress)

            def on_chunk(record):
                progress.completed_chunks += 1
                progress.bytes_transferred += record.size
                progress_callback(progress)

        manifest = await self.storage.store_file(file_path, cipher, self.config.chunk_size, on_chunk)

        if progress_callback:
            progress.total_chunks = manifest.chunk_count
            progress.phase = TransferPhase.COMPLETE
            progress_callback(progress)

        manifest.save(self.manifest_path)

        logger.info(f"Manifest written to {self.manifest_path}")
        return manifest

    async def upload(self, cancel: Optional[asyncio.Event] = None,
                     progress_callback: ProgressCallback = None) -> Manifest:
        """
        Upload pending chunks and persist the updated manifest.

        The manifest is written after all chunk results are collected, also
        when strict mode raises ReplicationError.
        """
        manifest = self.load_manifest()

        try:
            await self.uploader.upload(manifest, self.storage, cancel, progress_callback)
        except ReplicationError:
            manifest.save(self.manifest_path)
            raise

        manifest.save(self.manifest_path)

        if self.config.cleanup_after_upload:
            if manifest.distribution_mode == DistributionMode.CLOUD:
                self.storage.cleanup_chunks()
            else:
                logger.warning("Keeping local chunks: not every chunk has a remote replica")

        return manifest

    async def download(self, cancel: Optional[asyncio.Event] = None,
                       progress_callback: ProgressCallback = None) -> int:
        """Fetch chunks missing locally from their recorded destinations."""
        manifest = self.load_manifest()
        return await self.downloader.download(manifest, self.storage, cancel, progress_callback)

    async def assemble(self, output_path: Path, password: Optional[str] = None,
                       download: bool = False) -> Path:
        """
        Rebuild the original file from its chunks.

        Args:
            output_path: Where to write the file
            password: Decryption password (required iff the manifest is encrypted)
            download: Fetch missing chunks from remote destinations first

        Returns:
            Path to the reassembled file
        """
        manifest = self.load_manifest()

        # Fail fast before touching any chunk
        manifest.check_intent(decrypt=password is not None)

        if password is not None:
            cipher = Cipher.from_password(password, manifest.kdf)
        else:
            cipher = Cipher.disabled()

        if download:
            await self.downloader.download(manifest, self.storage)

        return await self.storage.reassemble_file(manifest, Path(output_path), cipher)

    def cleanup(self) -> int:
        """Remove local chunk files."""
        return self.storage.cleanup_chunks()

    # === Info ===

    def get_stats(self) -> dict:
        """Get complete store statistics."""
        stats = self.storage.get_stats()
        return {
            'chunks_dir': str(self.storage.chunks_dir),
            'local_chunks': stats.total_chunks,
            'local_bytes': stats.total_bytes,
            'backends': len(self.registry),
            'uploader': self.uploader.get_stats(),
            'downloader': self.downloader.get_stats(),
        }

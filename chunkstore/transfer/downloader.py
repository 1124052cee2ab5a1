"""
Chunk Downloader

Design Decision: Download Strategy
===================================

Options Considered:
1. Recompute placement from the distribution strategy
   - Works without recorded destinations, breaks when the pool changes
2. Try recorded destinations in order
   - Targets the exact account/location the upload used
3. Race all replicas in parallel
   - Fastest, but multiplies remote traffic and rate-limit pressure

Decision: Recorded destinations, in order, first success wins
- A destination without a remote id is resolved by name first
- A payload of the wrong size counts as a failed replica
- Different chunks are fetched in parallel, bounded by a semaphore
- If every destination of a chunk fails the chunk is unavailable, and so
  is the whole assembly

Download Flow:
1. Skip chunks already present in local storage
2. Fetch the rest in parallel, falling through each chunk's replicas
3. Store each fetched chunk locally (still encrypted if it was)
4. Report every unavailable chunk at once
"""

import asyncio
import logging
from pathlib import PurePosixPath
from typing import Dict, List, Optional

from ..backends.base import BackendRegistry
from ..errors import BackendError, ChunkUnavailable
from ..file.manifest import ChunkRecord, Destination, Manifest
from ..file.storage import ChunkStorage
from .progress import ProgressCallback, TransferPhase, TransferProgress

logger = logging.getLogger(__name__)


class ChunkDownloader:
    """
    Downloads chunks from the destinations recorded in a manifest.
    """

    def __init__(self, registry: BackendRegistry, max_concurrent: int = 5,
                 timeout: Optional[float] = 60.0):
        """
        Initialize the downloader.

        Args:
            registry: Backends keyed by (provider, account)
            max_concurrent: Maximum chunk downloads at once
            timeout: Per backend call, in seconds (None = no limit)
        """
        self.registry = registry
        self.max_concurrent = max(1, max_concurrent)
        self.timeout = timeout

        # Statistics
        self.chunks_downloaded = 0
        self.bytes_downloaded = 0

    async def fetch_chunk(self, record: ChunkRecord) -> bytes:
        """
        Fetch one chunk's stored bytes from the first destination that works.

        Raises:
            ChunkUnavailable: no destination recorded, or all of them failed
        """
        if not record.destinations:
            raise ChunkUnavailable(
                "Chunk has no recorded destinations",
                chunk_id=record.id, index=record.index,
            )

        failures: List[str] = []
        for destination in record.destinations:
            try:
                data = await self._fetch_replica(destination)
            except asyncio.TimeoutError:
                error = f"timed out after {self.timeout}s"
            except BackendError as e:
                error = str(e)
            except Exception as e:
                logger.debug(f"Unexpected backend error from {destination.provider}", exc_info=True)
                error = f"{type(e).__name__}: {e}"
            else:
                if len(data) == record.size:
                    return data
                error = f"size mismatch: expected {record.size} bytes, got {len(data)}"

            where = f"{destination.provider}/{destination.account}"
            logger.warning(f"Failed to download chunk {record.id} (index {record.index}) "
                           f"from {where}: {error}")
            failures.append(f"{where}: {error}")

        last = record.destinations[-1]
        raise ChunkUnavailable(
            f"All {len(failures)} destination(s) failed: " + "; ".join(failures),
            chunk_id=record.id, index=record.index,
            provider=last.provider, account=last.account,
        )

    async def _fetch_replica(self, destination: Destination) -> bytes:
        backend = self.registry.get(destination.provider, destination.account)
        if backend is None:
            raise BackendError(
                "no backend registered",
                provider=destination.provider, account=destination.account,
            )

        remote_id = destination.remote_id
        if not remote_id:
            # Fallback: find the object by name
            name = PurePosixPath(destination.remote_path).name
            remote_id = await asyncio.wait_for(backend.find_by_name(name), timeout=self.timeout)

        return await asyncio.wait_for(backend.download(remote_id), timeout=self.timeout)

    async def download(self, manifest: Manifest, storage: ChunkStorage,
                       cancel: Optional[asyncio.Event] = None,
                       progress_callback: ProgressCallback = None) -> int:
        """
        Fetch every chunk missing from local storage.

        Records with the same id (repeated content) share one local file, so
        each id is fetched once, from any of its records' destinations.

        Args:
            manifest: Manifest with recorded destinations
            storage: Local chunk sink
            cancel: Once set, no new chunk fetches are started
            progress_callback: Optional callback for progress updates

        Returns:
            Number of chunk files fetched

        Raises:
            ChunkUnavailable: at least one chunk could not be fetched
        """
        cancel = cancel or asyncio.Event()
        missing: Dict[str, List[ChunkRecord]] = {}
        for record in storage.missing_chunks(manifest):
            missing.setdefault(record.id, []).append(record)

        if not missing:
            logger.info(f"All chunks already available for {manifest.original_name}")
            return 0

        logger.info(f"Downloading {manifest.original_name}: "
                    f"{len(missing)} distinct chunks needed ({manifest.chunk_count} in manifest)")

        semaphore = asyncio.Semaphore(self.max_concurrent)
        progress_lock = asyncio.Lock()
        progress = TransferProgress('download', len(missing), phase=TransferPhase.TRANSFERRING)
        if progress_callback:
            progress_callback(progress)

        async def fetch_any(records: List[ChunkRecord]) -> bytes:
            first_error = None
            for record in records:
                try:
                    return await self.fetch_chunk(record)
                except ChunkUnavailable as e:
                    first_error = first_error or e
            raise first_error

        async def fetch_one(chunk_id: str, records: List[ChunkRecord]) -> bool:
            async with semaphore:
                if cancel.is_set():
                    return False
                try:
                    data = await fetch_any(records)
                except ChunkUnavailable:
                    async with progress_lock:
                        progress.failed_chunks += 1
                        if progress_callback:
                            progress_callback(progress)
                    raise

                await storage.store_chunk(chunk_id, data)

                async with progress_lock:
                    progress.completed_chunks += 1
                    progress.bytes_transferred += len(data)
                    self.chunks_downloaded += 1
                    self.bytes_downloaded += len(data)
                    if progress_callback:
                        progress_callback(progress)
                return True

        results = await asyncio.gather(*(fetch_one(chunk_id, records)
                                         for chunk_id, records in missing.items()),
                                       return_exceptions=True)

        unavailable = [r for r in results if isinstance(r, ChunkUnavailable)]
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, ChunkUnavailable):
                raise result

        fetched = sum(1 for r in results if r is True)

        if unavailable:
            progress.phase = TransferPhase.FAILED
            if progress_callback:
                progress_callback(progress)
            first = unavailable[0]
            if len(unavailable) == 1:
                raise first
            indices = sorted(e.index for e in unavailable)
            raise ChunkUnavailable(
                f"{len(unavailable)} chunks unavailable (indices {indices}); first: {first.message}",
                chunk_id=first.chunk_id, index=first.index,
                provider=first.provider, account=first.account,
            )

        progress.phase = TransferPhase.CANCELLED if cancel.is_set() else TransferPhase.COMPLETE
        if progress_callback:
            progress_callback(progress)

        logger.info(f"Fetched {fetched} chunks for {manifest.original_name}")
        return fetched

    def get_stats(self) -> dict:
        """Get downloader statistics."""
        return {
            'chunks_downloaded': self.chunks_downloaded,
            'bytes_downloaded': self.bytes_downloaded,
        }

"""
Chunk Uploader

Pushes locally stored chunks to their remote destinations.

Upload Flow:
1. Ask the distribution strategy where each chunk's replicas go
2. Skip targets the manifest already records (re-runs resume a partial upload)
3. Upload chunks concurrently, bounded by a semaphore
4. Record every successful replica in the manifest under a lock
5. A failed replica is logged and reported, never fatal to other replicas
6. Recompute the distribution mode once all results are in
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..backends.base import BackendRegistry
from ..errors import BackendError, IOFailure, ReplicationError
from ..file.manifest import ChunkRecord, Destination, Manifest, update_distribution
from ..file.storage import ChunkStorage
from .progress import ProgressCallback, TransferPhase, TransferProgress
from .strategy import DistributionStrategy, Target

logger = logging.getLogger(__name__)


@dataclass
class ReplicaOutcome:
    """Result of uploading one replica of one chunk."""
    chunk_id: str
    index: int
    target: Target
    destination: Optional[Destination] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.destination is not None


@dataclass
class UploadReport:
    """Everything an upload pass did, replica by replica."""
    outcomes: List[ReplicaOutcome] = field(default_factory=list)
    cancelled: bool = False
    unresolved: List[int] = field(default_factory=list)  # chunk indices with no destination

    @property
    def uploaded(self) -> List[ReplicaOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def skipped(self) -> List[ReplicaOutcome]:
        return [o for o in self.outcomes if not o.ok]


class ChunkUploader:
    """
    Uploads a manifest's chunks to the destinations chosen by a strategy.

    Partial replication is tolerated: a chunk may end up with fewer than
    replication_count replicas, or none, and stays retryable.
    """

    def __init__(self, registry: BackendRegistry, strategy: DistributionStrategy,
                 max_concurrent: int = 5, timeout: Optional[float] = 60.0,
                 fail_on_replica_error: bool = False):
        """
        Initialize the uploader.

        Args:
            registry: Backends keyed by (provider, account)
            strategy: Placement of chunk index to targets
            max_concurrent: Maximum chunks uploading at once
            timeout: Per backend call, in seconds (None = no limit)
            fail_on_replica_error: Raise ReplicationError if any replica failed
        """
        self.registry = registry
        self.strategy = strategy
        self.max_concurrent = max(1, max_concurrent)
        self.timeout = timeout
        self.fail_on_replica_error = fail_on_replica_error

        self.last_report: Optional[UploadReport] = None

        # Statistics
        self.chunks_uploaded = 0
        self.bytes_uploaded = 0

    def plan(self, manifest: Manifest) -> List[Tuple[ChunkRecord, List[Target]]]:
        """Targets still to upload for each chunk, by index."""
        plan = []
        for record in manifest.sorted_chunks():
            targets: List[Target] = []
            for target in self.strategy.destinations_for(record.index):
                if target.is_local_only or target in targets:
                    continue
                if record.has_destination(target.provider.value, target.account):
                    continue
                targets.append(target)
            if targets:
                plan.append((record, targets))
        return plan

    async def upload(self, manifest: Manifest, storage: ChunkStorage,
                     cancel: Optional[asyncio.Event] = None,
                     progress_callback: ProgressCallback = None) -> Manifest:
        """
        Upload pending replicas and record them in the manifest.

        Args:
            manifest: Manifest to update in place
            storage: Local chunk source
            cancel: Once set, no new backend calls are issued; in-flight ones finish
            progress_callback: Optional callback for progress updates

        Returns:
            The updated manifest
        """
        cancel = cancel or asyncio.Event()
        plan = self.plan(manifest)
        report = UploadReport()

        semaphore = asyncio.Semaphore(self.max_concurrent)
        manifest_lock = asyncio.Lock()

        progress = TransferProgress('upload', len(plan), phase=TransferPhase.TRANSFERRING)
        if progress_callback:
            progress_callback(progress)

        logger.info(f"Uploading {manifest.original_name}: {len(plan)}/{manifest.chunk_count} "
                    f"chunks have pending replicas")

        async def upload_chunk(record: ChunkRecord, targets: List[Target]):
            async with semaphore:
                if cancel.is_set():
                    return

                try:
                    payload = await storage.read_chunk(record)
                except IOFailure as e:
                    logger.warning(f"Cannot read chunk {record.id} for upload: {e}")
                    outcomes = [ReplicaOutcome(record.id, record.index, t, error=str(e))
                                for t in targets]
                else:
                    outcomes = []
                    for target in targets:
                        if cancel.is_set():
                            break
                        outcomes.append(await self._upload_replica(record, payload, target))

                async with manifest_lock:
                    report.outcomes.extend(outcomes)
                    succeeded = [o for o in outcomes if o.ok]
                    for outcome in succeeded:
                        update_distribution(manifest, record.index, outcome.destination)

                    if succeeded:
                        progress.completed_chunks += 1
                        progress.bytes_transferred += record.size * len(succeeded)
                        self.chunks_uploaded += 1
                        self.bytes_uploaded += record.size * len(succeeded)
                    elif outcomes:
                        progress.failed_chunks += 1
                    if progress_callback:
                        progress_callback(progress)

        await asyncio.gather(*(upload_chunk(record, targets) for record, targets in plan))

        report.cancelled = cancel.is_set()
        report.unresolved = [c.index for c in manifest.pending_chunks()]
        manifest.refresh_distribution_mode(pass_complete=not report.cancelled)
        self.last_report = report

        progress.phase = TransferPhase.CANCELLED if report.cancelled else TransferPhase.COMPLETE
        if progress_callback:
            progress_callback(progress)

        logger.info(f"Upload pass finished: {len(report.uploaded)} replicas stored, "
                    f"{len(report.skipped)} skipped, {len(report.unresolved)} chunks unresolved, "
                    f"mode={manifest.distribution_mode.value}")

        if self.fail_on_replica_error and report.skipped:
            first = report.skipped[0]
            raise ReplicationError(
                f"{len(report.skipped)} replica(s) failed to upload: {first.error}",
                report=report, chunk_id=first.chunk_id, index=first.index,
                provider=first.target.provider.value, account=first.target.account,
            )

        return manifest

    async def _upload_replica(self, record: ChunkRecord, payload: bytes,
                              target: Target) -> ReplicaOutcome:
        """Upload one replica; failures become an outcome, never an exception."""
        remote_path = target.provider.remote_path(record.id)
        backend = self.registry.get(target.provider, target.account)

        if backend is None:
            error = f"no backend registered for {target}"
        else:
            try:
                remote_id = await asyncio.wait_for(
                    backend.upload(payload, remote_path),
                    timeout=self.timeout
                )
            except asyncio.TimeoutError:
                error = f"timed out after {self.timeout}s"
            except BackendError as e:
                error = str(e)
            except Exception as e:
                logger.debug(f"Unexpected backend error from {target}", exc_info=True)
                error = f"{type(e).__name__}: {e}"
            else:
                destination = Destination(
                    provider=target.provider.value,
                    remote_path=remote_path,
                    remote_id=remote_id,
                    account=target.account,
                )
                logger.debug(f"Uploaded chunk {record.index} ({record.id}) to {target}")
                return ReplicaOutcome(record.id, record.index, target, destination=destination)

        logger.warning(f"Failed to upload chunk {record.id} (index {record.index}) "
                       f"to {target}: {error}")
        return ReplicaOutcome(record.id, record.index, target, error=error)

    def get_stats(self) -> dict:
        """Get uploader statistics."""
        return {
            'chunks_uploaded': self.chunks_uploaded,
            'bytes_uploaded': self.bytes_uploaded,
        }

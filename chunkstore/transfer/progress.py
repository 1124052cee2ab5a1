"""
Transfer Progress

One record shared by upload and download passes. Callbacks receive the same
object on every update; copy it (or call to_dict) to keep a snapshot.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional


class TransferPhase(str, Enum):
    PENDING = 'pending'
    TRANSFERRING = 'transferring'
    COMPLETE = 'complete'
    CANCELLED = 'cancelled'
    FAILED = 'failed'


@dataclass
class TransferProgress:
    """Chunk-level progress of one pass."""
    direction: str  # 'split', 'upload' or 'download'
    total_chunks: int
    completed_chunks: int = 0
    failed_chunks: int = 0
    bytes_transferred: int = 0
    phase: TransferPhase = TransferPhase.PENDING
    started: float = field(default_factory=time.monotonic)

    @property
    def finished_chunks(self) -> int:
        return self.completed_chunks + self.failed_chunks

    @property
    def progress_percent(self) -> float:
        if not self.total_chunks:
            return 100.0
        return 100.0 * self.finished_chunks / self.total_chunks

    @property
    def elapsed(self) -> float:
        return time.monotonic() - self.started

    @property
    def throughput(self) -> float:
        """Bytes per second since the pass started."""
        elapsed = self.elapsed
        return self.bytes_transferred / elapsed if elapsed > 0 else 0.0

    def eta(self) -> Optional[float]:
        """Seconds left at the current chunk rate, None before the first chunk."""
        if not self.finished_chunks:
            return None
        per_chunk = self.elapsed / self.finished_chunks
        return per_chunk * (self.total_chunks - self.finished_chunks)

    def to_dict(self) -> dict:
        return {
            'direction': self.direction,
            'phase': self.phase.value,
            'total_chunks': self.total_chunks,
            'completed_chunks': self.completed_chunks,
            'failed_chunks': self.failed_chunks,
            'bytes_transferred': self.bytes_transferred,
            'progress_percent': round(self.progress_percent, 1),
            'throughput': self.throughput,
            'eta': self.eta(),
        }


ProgressCallback = Optional[Callable[[TransferProgress], None]]

"""
Transfer Module - Chunk Placement, Upload and Download

Moves chunks between local storage and remote backends.
"""

from .strategy import DistributionStrategy, LoadBalancing, Target, LOCAL_ONLY
from .progress import TransferPhase, TransferProgress
from .uploader import ChunkUploader, UploadReport, ReplicaOutcome
from .downloader import ChunkDownloader

__all__ = [
    'DistributionStrategy',
    'LoadBalancing',
    'Target',
    'LOCAL_ONLY',
    'TransferPhase',
    'TransferProgress',
    'ChunkUploader',
    'UploadReport',
    'ReplicaOutcome',
    'ChunkDownloader',
]

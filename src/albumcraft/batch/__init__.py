"""Batch album submission: schemas, orchestrator and routes."""

from .batch_models import AlbumDefinition, BatchRequest, BatchResult, RawFile
from .batch_service import BatchOrchestrator, decode_files

__all__ = [
    "AlbumDefinition",
    "BatchOrchestrator",
    "BatchRequest",
    "BatchResult",
    "RawFile",
    "decode_files",
]

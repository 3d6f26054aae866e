"""
Data Ingestion Module
"""
from .batch_loader import BatchFileConfig, BatchLoader, FileFormat, LoadResult, LoadStatus, RowStatus
from .stream_ingestor import IngestOutcome, IngestStatus, RetryPolicy, StreamIngestor

__all__ = [
    "BatchFileConfig",
    "BatchLoader",
    "FileFormat",
    "LoadResult",
    "LoadStatus",
    "RowStatus",
    "IngestOutcome",
    "IngestStatus",
    "RetryPolicy",
    "StreamIngestor",
]

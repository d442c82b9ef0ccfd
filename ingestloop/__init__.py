"""ingestloop - resumable one-item-at-a-time ingestion for workflow engines."""

__version__ = "0.3.0"

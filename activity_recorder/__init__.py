"""Activity recording pipeline: sensor ingestion, durable chunking, metrics and upload."""

__version__ = "0.1.0"

"""blogfeed: resilient multi-source blog post ingestion."""

__version__ = "1.0.0"

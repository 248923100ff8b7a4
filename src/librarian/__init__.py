"""Document ingestion, vector caching and hybrid retrieval for a library assistant."""

__version__ = "0.1.0"

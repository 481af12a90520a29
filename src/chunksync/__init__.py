"""
chunksync: Chunked job orchestration for asynchronous job runtimes.

Splits a large dataset into durable, independently retryable chunks,
tracks each chunk through its lifecycle, and detects when a whole run
has finished without a coordinator process staying alive.
"""

__version__ = "0.1.0"

"""Integral-stream read contract and in-memory adapters."""

from .stream import DEFAULT_CHUNK_SIZE, IntegralChunk, chunked_records, iter_chunks, unique_integrals

__all__ = [
    "DEFAULT_CHUNK_SIZE",
    "IntegralChunk",
    "chunked_records",
    "iter_chunks",
    "unique_integrals",
]

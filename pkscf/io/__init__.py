"""Checkpoint and diagnostics sinks."""

from .checkpoint import CheckpointRecord, MemorySink, NpzCheckpointSink, load_checkpoint, save_checkpoint
from .diagnostics import IterationRecord, LoggingDiagnostics, RecordingDiagnostics, format_summary

__all__ = [
    "CheckpointRecord",
    "IterationRecord",
    "LoggingDiagnostics",
    "MemorySink",
    "NpzCheckpointSink",
    "RecordingDiagnostics",
    "format_summary",
    "load_checkpoint",
    "save_checkpoint",
]

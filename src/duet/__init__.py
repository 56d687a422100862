"""Duet: a memory-augmented assistant that dispatches between two LLM backends."""

__version__ = "0.1.0"

"""Resumable, structure-preserving Markdown document translator."""

__version__ = "0.1.0"

"""Incremental synchronization of a Confluence space into a local content store."""

__version__ = "0.1.0"

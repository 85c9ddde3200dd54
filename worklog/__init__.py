"""Time entry filtering, rollups and cache invalidation service."""

__version__ = "0.1.0"

"""File-backed object storage with access tracking, tiering recommendations and replication helpers."""

__version__ = "0.1.0"
__all__ = ["__version__"]
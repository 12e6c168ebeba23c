"""
Catalog persistence.

JSON-file backed, append-only record lists. Appends are serialized process-wide.
"""

from .store import JsonCatalogStore

__all__ = ["JsonCatalogStore"]

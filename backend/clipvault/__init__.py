"""
ClipVault backend - short video ingestion and catalog service.
"""

__version__ = "0.1.0"

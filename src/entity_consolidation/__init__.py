"""Entity deduplication and consolidation engine for the customer registry."""

__version__ = "0.1.0"

"""Home inventory service: webhook reconciliation, item extraction and merging."""

__version__ = "0.1.0"

"""Custom connector syncing documents from a REST source into Amazon Q Business."""

__version__ = "1.0.0"

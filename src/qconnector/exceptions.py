"""Custom exception hierarchy for qconnector.

These exceptions allow callers to discriminate error categories
and handle them appropriately while preserving the original context.
"""

from __future__ import annotations


class QConnectorError(Exception):
    """Base class for all qconnector exceptions."""


class ConfigError(QConnectorError):
    """Raised when required configuration is missing."""


class InvalidConfigurationError(ConfigError):
    """Raised when a configuration value is present but unusable (e.g. batch size <= 0)."""


class SourceFetchError(QConnectorError):
    """Raised when fetching documents from the source API fails."""


class SinkUploadError(QConnectorError):
    """Raised when a batch upload to the indexing service fails."""

"""Base interface for source connectors.

Connectors fetch raw records from an external system and normalize them to
`RawDocument`. They must be safe to construct without side effects and must
not perform network calls until methods are invoked.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List

from qconnector.models import RawDocument, SourcePage


class BaseConnector(ABC):
    """Abstract source connector interface."""

    @abstractmethod
    async def fetch_page(self, page: int) -> SourcePage:
        """Fetch one 1-based page of documents."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_all(self) -> List[RawDocument]:
        """Fetch every document, page by page, in source order."""
        raise NotImplementedError

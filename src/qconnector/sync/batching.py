from __future__ import annotations

from typing import List, Sequence, TypeVar

from qconnector.exceptions import InvalidConfigurationError

T = TypeVar("T")


def create_batches(items: Sequence[T], size: int) -> List[List[T]]:
    """Split `items` into consecutive chunks of `size`; only the last may be shorter."""
    if isinstance(size, bool) or not isinstance(size, int) or size <= 0:
        raise InvalidConfigurationError(f"Batch size must be a positive integer, got {size!r}")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]

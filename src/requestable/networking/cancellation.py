"""Cooperative cancellation for transfers."""

from __future__ import annotations

import threading

from .errors import RequestCancelledError


class CancellationToken:
    """Thread-safe cancellation flag checked between pipeline stages.

    Examples:
        >>> token = CancellationToken()
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        self._is_cancelled = threading.Event()

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        return self._is_cancelled.is_set()

    def raise_if_cancelled(self) -> None:
        if self._is_cancelled.is_set():
            raise RequestCancelledError("transfer cancelled")


def raise_if_cancelled(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()

"""Cooperative cancellation for mapping runs."""

import threading


class CancellationToken:
    """
    Thread-safe cancellation flag polled by batch workers.

    Cancellation is cooperative: workers check the token before starting a
    batch and periodically between targets, finish the target in hand and
    return what they have. Results gathered so far are kept.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


__all__ = ["CancellationToken"]

"""Cooperative cancellation for in-flight fetches."""

from treepager.errors import OperationCancelledError


class CancellationToken:
    """Flag shared between a caller and the work it started.

    Cancelling never interrupts a request already dispatched to a data source;
    the caller checks the token once the result arrives and discards it.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            msg = "Operation was cancelled"
            raise OperationCancelledError(msg)

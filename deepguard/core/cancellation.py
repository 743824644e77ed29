# deepguard/core/cancellation.py
from deepguard.core.errors import AnalysisCancelledError


class CancelToken:
    """
    Cooperative cancellation flag for one submission.

    The pipeline checks it around every suspension point (each frame seek,
    the network round trip), so a caller that walks away can stop work
    between steps. A step already running is not interrupted.
    """

    def __init__(self):
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise AnalysisCancelledError()

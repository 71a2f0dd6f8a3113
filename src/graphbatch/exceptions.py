"""
Graphbatch-specific runtime exceptions.
"""

from __future__ import annotations

THROTTLING_RETRIES_EXHAUSTED = "ThrottlingRetriesExhausted"
INVALID_RESPONSE = "InvalidResponse"


class GraphBatchError(Exception):
    """
    Base class for errors raised by graphbatch.
    """


class TransportError(GraphBatchError):
    """
    Raised when a whole batch submission fails.

    Parameters
    ----------
    message : str
        Human readable description.
    classification : str
        Short machine-friendly tag, e.g. ``"401|InvalidAuthenticationToken"``
        or the name of the network exception.
    """

    def __init__(self, message: str, *, classification: str) -> None:
        super().__init__(message)
        self.classification = classification


class RunConsumedError(GraphBatchError):
    """
    Raised when a ``Batcher`` is asked to run a second time.

    Notes
    -----
    The output of a run is a non-restartable iterator: the task pool is
    drained while results are produced.
    """

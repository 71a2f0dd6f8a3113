from .api import invoke_batch as invoke_batch
from .config import BatchSettings as BatchSettings
from .core import Batcher as Batcher
from .enums import ErrorCategory as ErrorCategory
from .enums import OutputMode as OutputMode
from .errors import LoggingErrorSink as LoggingErrorSink
from .exceptions import TransportError as TransportError
from .models import CorrelatedResult as CorrelatedResult
from .transport import HttpxBatchTransport as HttpxBatchTransport

__all__ = [
    "invoke_batch",
    "Batcher",
    "BatchSettings",
    "CorrelatedResult",
    "ErrorCategory",
    "HttpxBatchTransport",
    "LoggingErrorSink",
    "OutputMode",
    "TransportError",
]

from enum import StrEnum


class OutputMode(StrEnum):
    plain = "plain"
    raw = "raw"
    correlated = "correlated"


class ErrorCategory(StrEnum):
    INVALID_ARGUMENT = "invalid argument"
    CONNECTION_ERROR = "connection error"
    INVALID_OPERATION = "invalid operation"
    LIMITS_EXCEEDED = "limits exceeded"

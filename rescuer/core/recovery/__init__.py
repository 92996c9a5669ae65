"""
Error Recovery Module

Error taxonomy for the rescue pipeline: which failures stop it and which
leave it waiting for the next block.
"""

from .errors import (
    ErrorCategory,
    ErrorContext,
    RecoverableError,
    UnrecoverableError,
    ConfigurationError,
    MalformedBundleError,
    SimulationFailure,
    SubmissionFailure,
    AccountNonceTooHighError,
    ChainRpcError,
    classify_error,
)

__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "RecoverableError",
    "UnrecoverableError",
    "ConfigurationError",
    "MalformedBundleError",
    "SimulationFailure",
    "SubmissionFailure",
    "AccountNonceTooHighError",
    "ChainRpcError",
    "classify_error",
]

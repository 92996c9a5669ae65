"""
Error Classification

Defines error types for the rescue pipeline.
Errors are classified as recoverable (retry on the next block) or
unrecoverable (stop the pipeline and surface a diagnostic to the operator).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    CONFIGURATION = "configuration"   # Missing keys, endpoints, bad values
    MALFORMED_BUNDLE = "malformed_bundle"  # Nonce/ordering invariant violated
    SIMULATION = "simulation"         # Relay predicts revert or invalidity
    SUBMISSION = "submission"         # Relay rejected payload or transport failed
    NONCE_TOO_HIGH = "nonce_too_high"  # A signer's nonce already advanced
    NETWORK = "network"               # Chain data source unreachable
    RPC = "rpc"                       # Chain data source returned an error
    UNKNOWN = "unknown"               # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    suggested_action: Optional[str] = None
    chain_id: Optional[int] = None
    target_block: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors that leave the pipeline able to try again.

    The current attempt is abandoned and a fresh one is built on the
    next observed block.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that stop the pipeline.

    These require the operator to look at the incident:
    - Invalid configuration or key material
    - A builder bug producing a malformed bundle
    - The relay rejecting the bundle
    - A competing transaction consuming a signer's nonce
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)

    @property
    def recoverable(self) -> bool:
        return self.context.recoverable


class ConfigurationError(UnrecoverableError):
    """Missing signing material, endpoint, or invalid static configuration."""

    def __init__(self, message: str = "Invalid configuration", setting: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            context=ErrorContext(
                category=ErrorCategory.CONFIGURATION,
                recoverable=False,
                suggested_action="Fix the configuration and restart",
                details={"setting": setting} if setting else {},
            ),
        )
        self.setting = setting


class MalformedBundleError(UnrecoverableError):
    """Bundle entries violate nonce contiguity, chain id, or signer invariants."""

    def __init__(
        self,
        message: str = "Malformed bundle",
        sender: Optional[str] = None,
        nonces: Optional[List[int]] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.MALFORMED_BUNDLE,
            context=ErrorContext(
                category=ErrorCategory.MALFORMED_BUNDLE,
                recoverable=False,
                suggested_action="Bundle builder bug; inspect the rescue plan",
                details={"sender": sender, "nonces": nonces or []},
            ),
        )
        self.sender = sender
        self.nonces = nonces or []


class SimulationFailure(UnrecoverableError):
    """
    The relay predicts the bundle would revert or is invalid.

    Fatal by default. When the pipeline runs with
    ``retry_on_simulation_failure`` the failure is marked recoverable
    and the pipeline waits for the next block instead.
    """

    def __init__(
        self,
        message: str = "Bundle simulation failed",
        target_block: Optional[int] = None,
        diagnostics: Optional[Dict[str, Any]] = None,
        first_revert: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.SIMULATION,
            context=ErrorContext(
                category=ErrorCategory.SIMULATION,
                recoverable=False,
                target_block=target_block,
                suggested_action="Inspect the reverting transaction",
                details={"diagnostics": diagnostics or {}, "first_revert": first_revert},
            ),
        )
        self.target_block = target_block
        self.diagnostics = diagnostics or {}
        self.first_revert = first_revert


class SubmissionFailure(UnrecoverableError):
    """The relay rejected the bundle or could not be reached."""

    def __init__(
        self,
        message: str = "Bundle submission failed",
        target_block: Optional[int] = None,
        error_data: Optional[Any] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.SUBMISSION,
            context=ErrorContext(
                category=ErrorCategory.SUBMISSION,
                recoverable=False,
                target_block=target_block,
                suggested_action="Check relay endpoint and bundle payload",
                details={"error_data": error_data} if error_data is not None else {},
            ),
        )
        self.target_block = target_block


class AccountNonceTooHighError(UnrecoverableError):
    """A signer's nonce advanced past the one the bundle used."""

    def __init__(
        self,
        message: str = "Account nonce too high",
        target_block: Optional[int] = None,
        accounts: Optional[List[str]] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.NONCE_TOO_HIGH,
            context=ErrorContext(
                category=ErrorCategory.NONCE_TOO_HIGH,
                recoverable=False,
                target_block=target_block,
                suggested_action="A competing transaction landed; this recovery path is exhausted",
                details={"accounts": accounts or []},
            ),
        )


class ChainRpcError(RecoverableError):
    """Reading chain state failed; the attempt is abandoned, not the rescue."""

    def __init__(
        self,
        message: str = "Chain RPC error",
        method: Optional[str] = None,
        error_data: Optional[Any] = None,
        category: ErrorCategory = ErrorCategory.RPC,
    ):
        super().__init__(
            message,
            category=category,
            context=ErrorContext(
                category=category,
                recoverable=True,
                suggested_action="Retry on the next block",
                details={"method": method, "error_data": error_data},
            ),
        )
        self.method = method


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Classified errors carry their own context; transport errors are
    treated as transient and anything else as unknown and fatal.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    if isinstance(error, httpx.TimeoutException):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            suggested_action="Retry on the next block",
            details={"error": str(error)},
        )

    if isinstance(error, httpx.TransportError):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            suggested_action="Check network connectivity",
            details={"error": str(error)},
        )

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return ErrorContext(
            category=ErrorCategory.NETWORK if status >= 500 else ErrorCategory.RPC,
            recoverable=status >= 500 or status == 429,
            suggested_action="Retry on the next block" if status >= 500 else "Check endpoint configuration",
            details={"status_code": status},
        )

    return ErrorContext(
        category=ErrorCategory.UNKNOWN,
        recoverable=False,
        suggested_action="Inspect logs",
        details={"error": str(error)},
    )

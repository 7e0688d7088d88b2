"""
Audit-specific exception hierarchy for feeaudit.

Provides typed exceptions for ledger reads and startup so that fatal I/O
failures can be told apart from verification findings, which are never raised.
"""

from __future__ import annotations
from typing import Optional, Any, Dict


class AuditError(Exception):
    """Base exception for all audit errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation could succeed if repeated
    """

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable


# ==================== Ledger Errors ====================


class LedgerError(AuditError):
    """Raised when a read against the ledger fails."""
    pass


class TransportError(LedgerError):
    """Raised when a JSON-RPC request fails at the network or node level.

    Always fatal to the current run. The core never retries.
    """

    def __init__(
        self,
        message: str,
        method: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        kwargs.setdefault("recoverable", True)
        super().__init__(message, **kwargs)
        self.method = method


class ResolutionError(LedgerError):
    """Raised when a logical contract name is not registered in storage."""

    def __init__(
        self,
        message: str,
        contract_name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.contract_name = contract_name


class DecodeError(LedgerError):
    """Raised when a response payload or stored ABI cannot be decoded."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(AuditError):
    """Raised when network or runtime configuration is missing or invalid."""
    pass


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, AuditError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    if isinstance(exc, TransportError) and exc.method:
        context["method"] = exc.method

    if isinstance(exc, ResolutionError) and exc.contract_name:
        context["contract_name"] = exc.contract_name

    if exc.__cause__ is not None:
        context["cause"] = f"{type(exc.__cause__).__name__}: {exc.__cause__}"

    return context

"""
Context Graph Domain-Specific Exceptions
========================================

This module defines a hierarchy of exceptions for consistent error handling
across the context graph engine.

Exception Hierarchy:
    ContextGraphError (base)
    ├── RecoverableError (transient, retry possible)
    │   ├── ExtractionTimeoutError
    │   └── PersistenceError
    ├── IrrecoverableError (permanent, requires intervention)
    │   ├── ConfigurationError
    │   ├── SnapshotCorruptionError
    │   ├── ValidationError
    │   │   └── MalformedExtractionError
    │   └── NotFoundError
    │       └── NodeNotFoundError
    └── Domain Errors (mixed recoverability)
        ├── StorageError
        ├── ExtractionError
        └── ConsolidationError

Usage Guidelines:
    - Return None for "not found" lookups inside the graph (expected case)
    - Raise at parse, config and CLI boundaries
    - Callers that ingest external output (extraction, cleanup plans,
      consolidation advice) catch these and degrade to "skip this unit"
"""

from typing import Any, Optional
from enum import Enum
import os


class ErrorCategory(Enum):
    """Categories for error classification."""
    STORAGE = "STORAGE"
    CONFIG = "CONFIG"
    VALIDATION = "VALIDATION"
    GRAPH = "GRAPH"
    EXTRACTION = "EXTRACTION"
    REGISTRY = "REGISTRY"
    SYSTEM = "SYSTEM"


class ContextGraphError(Exception):
    """
    Base exception for all context graph errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context about the error
        recoverable: Whether the error is potentially recoverable
    """

    error_code: str = "CONTEXT_GRAPH_ERROR"
    recoverable: bool = True
    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(
        self,
        message: str,
        context: Optional[dict] = None,
        error_code: Optional[str] = None,
        recoverable: Optional[bool] = None
    ):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        if error_code is not None:
            self.error_code = error_code
        if recoverable is not None:
            self.recoverable = recoverable

    def __str__(self) -> str:
        if self.context:
            return f"{self.message} | context={self.context}"
        return self.message

    def to_dict(self, include_traceback: bool = False) -> dict:
        """
        Convert exception to dictionary for JSON output.

        Args:
            include_traceback: Whether to include stack trace (only in DEBUG mode)
        """
        result = {
            "error": self.message,
            "code": self.error_code,
            "recoverable": self.recoverable,
        }

        if include_traceback:
            import traceback
            result["traceback"] = traceback.format_exc()

        if self.context:
            result["context"] = self.context

        return result


# =============================================================================
# Base Categories: Recoverable vs Irrecoverable
# =============================================================================

class RecoverableError(ContextGraphError):
    """
    Base class for recoverable errors.

    These are transient errors that may succeed on a later attempt:
    - Extraction timeouts
    - Disk write failures
    """
    recoverable = True


class IrrecoverableError(ContextGraphError):
    """
    Base class for irrecoverable errors.

    These are permanent errors that require intervention:
    - Invalid configuration
    - Corrupt snapshots
    - Validation failures
    - Resource not found
    """
    recoverable = False


# =============================================================================
# Storage Errors
# =============================================================================

class StorageError(ContextGraphError):
    """Base exception for snapshot and registry storage errors."""
    error_code = "STORAGE_ERROR"
    category = ErrorCategory.STORAGE


class PersistenceError(RecoverableError, StorageError):
    """Raised when a snapshot cannot be written or read."""
    error_code = "PERSISTENCE_ERROR"

    def __init__(self, path: str, operation: str, reason: str, context: Optional[dict] = None):
        ctx = {"path": path, "operation": operation}
        if context:
            ctx.update(context)
        super().__init__(f"Snapshot {operation} failed for '{path}': {reason}", ctx)
        self.path = path
        self.operation = operation


class SnapshotCorruptionError(IrrecoverableError, StorageError):
    """Raised when a stored snapshot cannot be deserialized."""
    error_code = "SNAPSHOT_CORRUPTION_ERROR"

    def __init__(self, path: str, reason: str = "Snapshot is corrupt", context: Optional[dict] = None):
        ctx = {"path": path}
        if context:
            ctx.update(context)
        super().__init__(f"{reason} ('{path}')", ctx)
        self.path = path


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(IrrecoverableError):
    """Raised when configuration is invalid or missing."""
    error_code = "CONFIGURATION_ERROR"
    category = ErrorCategory.CONFIG

    def __init__(self, config_key: str, reason: str, context: Optional[dict] = None):
        ctx = {"config_key": config_key}
        if context:
            ctx.update(context)
        super().__init__(f"Configuration error for '{config_key}': {reason}", ctx)
        self.config_key = config_key


# =============================================================================
# Validation Errors
# =============================================================================

class ValidationError(IrrecoverableError):
    """Raised when input validation fails."""
    error_code = "VALIDATION_ERROR"
    category = ErrorCategory.VALIDATION

    def __init__(self, field: str, reason: str, value: Any = None, context: Optional[dict] = None):
        ctx = {"field": field}
        if value is not None:
            # Truncate large values
            value_str = str(value)
            if len(value_str) > 100:
                value_str = value_str[:100] + "..."
            ctx["value"] = value_str
        if context:
            ctx.update(context)
        super().__init__(f"Validation error for '{field}': {reason}", ctx)
        self.field = field
        self.reason = reason


# =============================================================================
# Not Found Errors
# =============================================================================

class NotFoundError(IrrecoverableError):
    """Raised when a requested resource is not found."""
    error_code = "NOT_FOUND_ERROR"
    category = ErrorCategory.SYSTEM

    def __init__(self, resource_type: str, resource_id: str, context: Optional[dict] = None):
        ctx = {"resource_type": resource_type, "resource_id": resource_id}
        if context:
            ctx.update(context)
        super().__init__(f"{resource_type} '{resource_id}' not found", ctx)
        self.resource_type = resource_type
        self.resource_id = resource_id


class NodeNotFoundError(NotFoundError):
    """Raised when a graph node is not found."""
    error_code = "NODE_NOT_FOUND_ERROR"
    category = ErrorCategory.GRAPH

    def __init__(self, node_id: str, context: Optional[dict] = None):
        super().__init__("Node", node_id, context)
        self.node_id = node_id


# =============================================================================
# Extraction Errors
# =============================================================================

class ExtractionError(ContextGraphError):
    """Base exception for extraction collaborator failures."""
    error_code = "EXTRACTION_ERROR"
    category = ErrorCategory.EXTRACTION


class MalformedExtractionError(ValidationError, ExtractionError):
    """Raised when extraction output has an invalid structure."""
    error_code = "MALFORMED_EXTRACTION_ERROR"
    category = ErrorCategory.EXTRACTION

    def __init__(self, reason: str, value: Any = None, context: Optional[dict] = None):
        super().__init__("extraction", reason, value, context)


class ExtractionTimeoutError(RecoverableError, ExtractionError):
    """Raised when the extraction collaborator exceeds its time limit."""
    error_code = "EXTRACTION_TIMEOUT_ERROR"

    def __init__(self, timeout_seconds: float, context: Optional[dict] = None):
        ctx = {"timeout_seconds": timeout_seconds}
        if context:
            ctx.update(context)
        super().__init__(f"Extraction timed out after {timeout_seconds}s", ctx)
        self.timeout_seconds = timeout_seconds


# =============================================================================
# Consolidation Errors
# =============================================================================

class ConsolidationError(ContextGraphError):
    """Raised when a consolidation advisor returns unusable output."""
    error_code = "CONSOLIDATION_ERROR"
    category = ErrorCategory.REGISTRY


def is_debug_mode() -> bool:
    """Check if debug mode is enabled via environment variable."""
    return os.environ.get("CTXGRAPH_DEBUG", "").lower() in ("true", "1", "yes")


__all__ = [
    # Base
    "ContextGraphError",
    "RecoverableError",
    "IrrecoverableError",
    "ErrorCategory",
    # Storage
    "StorageError",
    "PersistenceError",
    "SnapshotCorruptionError",
    # Config
    "ConfigurationError",
    # Validation
    "ValidationError",
    # Not Found
    "NotFoundError",
    "NodeNotFoundError",
    # Extraction
    "ExtractionError",
    "MalformedExtractionError",
    "ExtractionTimeoutError",
    # Consolidation
    "ConsolidationError",
    # Utilities
    "is_debug_mode",
]

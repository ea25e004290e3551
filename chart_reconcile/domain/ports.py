"""Domain Ports - Abstract Contracts for Source Loading.

This module defines the Port interfaces (abstract contracts) that source
Adapters must implement, the Result type used to communicate load outcomes,
and the exception hierarchy of the reconciliation pipeline.

Following Hexagonal Architecture, the Domain Core defines what it needs (one
already-parsed ``SourceSnapshot`` per health system), not how it is fetched.

Security Impact:
    - Ports enforce that adapters yield validated SourceSnapshot objects
    - Individual malformed records are rejected at the boundary, never merged

Architecture:
    - Pure abstract interfaces with zero infrastructure dependencies
    - Adapters (JSON snapshot files, future API clients) implement these ports
    - Domain Core is isolated from data source specifics
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar, Union

from chart_reconcile.domain.clinical_record import SourceSnapshot

# Type variable for Result generic
T = TypeVar('T')


# ============================================================================
# Result Type for Success/Failure Communication
# ============================================================================

@dataclass(frozen=True)
class Result(Generic[T]):
    """Result type for communicating success or failure without exceptions.

    Source loaders return a Result so the pipeline can tolerate partial source
    failure: a failed source contributes an empty snapshot instead of aborting
    the run.

    Attributes:
        success: True if the operation succeeded, False otherwise
        value: The successful result value (only present if success=True)
        error: Error information (only present if success=False)
        error_type: Type of error (SourceLoadError, UnsupportedSourceError, etc.)
        error_details: Additional error context (source, rejected record count, etc.)

    Example:
        ```python
        result = adapter.load("community-mc.json")
        if result.is_success():
            snapshot = result.value
        else:
            logger.warning(result.error, extra=result.error_details)
        ```
    """

    success: bool
    value: Optional[T] = None
    error: Optional[str] = None
    error_type: Optional[str] = None
    error_details: Optional[dict] = None

    @classmethod
    def success_result(cls, value: T) -> 'Result[T]':
        """Create a successful result.

        Parameters:
            value: The successful result value

        Returns:
            Result: Success result with the value
        """
        return cls(success=True, value=value)

    @classmethod
    def failure_result(
        cls,
        error: Union[str, Exception],
        error_type: Optional[str] = None,
        error_details: Optional[dict] = None
    ) -> 'Result[T]':
        """Create a failure result.

        Parameters:
            error: Error message or exception
            error_type: Type of error (e.g., "SourceLoadError")
            error_details: Additional context (source, record_index, etc.)

        Returns:
            Result: Failure result with error information
        """
        error_message = str(error) if isinstance(error, Exception) else error
        error_type_name = error_type or (type(error).__name__ if isinstance(error, Exception) else "UnknownError")

        return cls(
            success=False,
            value=None,
            error=error_message,
            error_type=error_type_name,
            error_details=error_details or {}
        )

    def is_success(self) -> bool:
        """Check if result is successful."""
        return self.success

    def is_failure(self) -> bool:
        """Check if result is a failure."""
        return not self.success


# ============================================================================
# Custom Exception Hierarchy
# ============================================================================

class ReconciliationError(Exception):
    """Base exception for all reconciliation pipeline errors."""
    pass


class SourceLoadError(ReconciliationError):
    """Raised when a source snapshot cannot be read or parsed.

    Attributes:
        source: The source identifier that failed to load
        details: Additional error details
    """

    def __init__(self, message: str, source: Optional[str] = None, details: Optional[dict] = None):
        super().__init__(message)
        self.source = source
        self.details = details or {}


class UnsupportedSourceError(ReconciliationError):
    """Raised when no adapter can handle the given source.

    Attributes:
        source: The source identifier that is unsupported
        adapter: The adapter that cannot handle the source
    """

    def __init__(self, message: str, source: Optional[str] = None, adapter: Optional[str] = None):
        super().__init__(message)
        self.source = source
        self.adapter = adapter


class NoSourceDataError(ReconciliationError):
    """Raised when no included source produced any record.

    This is the only hard failure of a pipeline run; partial source failure
    is tolerated as long as one source returned data.

    Attributes:
        sources: The source identifiers that were attempted
    """

    def __init__(self, message: str = "No health data available from any source.",
                 sources: Optional[list] = None):
        super().__init__(message)
        self.sources = sources or []


# ============================================================================
# Source Port
# ============================================================================

class SourcePort(ABC):
    """Abstract contract for source snapshot loaders.

    Key Principles:
        - One call returns one complete snapshot of one health system
        - Validated: records are parsed into the common per-domain models
        - Triage: a malformed record is rejected and counted, not fatal
        - Failures are communicated via Result, not exceptions

    Example Usage:
        ```python
        adapter = JSONSourceAdapter()
        if adapter.can_load("community-mc.json"):
            result = adapter.load("community-mc.json")
        ```
    """

    @abstractmethod
    def load(self, source: str) -> Result[SourceSnapshot]:
        """Load one source's parsed records.

        Parameters:
            source: Source identifier (file path, URL, etc.)

        Returns:
            Result[SourceSnapshot]: The snapshot on success; error information
            (missing file, malformed document) on failure
        """
        pass

    @abstractmethod
    def can_load(self, source: str) -> bool:
        """Check if this adapter can handle the given source.

        Parameters:
            source: Source identifier to check

        Returns:
            bool: True if this adapter can handle the source
        """
        pass

    def get_source_info(self, source: str) -> Optional[dict]:
        """Get metadata about the source without loading it.

        Parameters:
            source: Source identifier

        Returns:
            Optional[dict]: Metadata such as 'format' and 'size', or None if
            metadata cannot be determined
        """
        return None

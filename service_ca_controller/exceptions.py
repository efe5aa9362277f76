"""
Core exceptions for the service CA controller.

This module defines the exception hierarchy used throughout the controller.
Store failures carry enough context (operation, kind, key, status) for the
reconcile loop to log them and retry the request on the next pass.
"""

from typing import Any, Dict, Optional


class ServiceCAError(Exception):
    """Base exception for all controller errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self) -> str:
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary representation."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigurationError(ServiceCAError):
    """Raised when configuration is invalid or missing."""

    pass


class StoreError(ServiceCAError):
    """
    Raised when an object store operation fails.

    Store faults are never retried inside the controller. They propagate to
    the caller, which reports the reconcile pass as failed.
    """

    error_code_default = "STORE_ERROR"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        kind: Optional[str] = None,
        name: Optional[str] = None,
        namespace: Optional[str] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            self.error_code_default,
            {
                "operation": operation,
                "kind": kind,
                "name": name,
                "namespace": namespace,
                "status": status,
            },
        )
        self.operation = operation
        self.kind = kind
        self.name = name
        self.namespace = namespace
        self.status = status


class ObjectNotFoundError(StoreError):
    """Raised when the requested object does not exist."""

    error_code_default = "NOT_FOUND"


class ObjectAlreadyExistsError(StoreError):
    """Raised when creating an object whose name is already taken."""

    error_code_default = "ALREADY_EXISTS"


class ObjectConflictError(StoreError):
    """Raised when an update was based on a stale resource version."""

    error_code_default = "CONFLICT"


class PreconditionError(ServiceCAError):
    """
    Raised when a cluster precondition is missing.

    The controller cannot make progress without it, so callers are expected
    to terminate rather than retry.
    """

    pass


class CertificateDataError(ServiceCAError):
    """Raised when issued key material is missing or unreadable."""

    pass

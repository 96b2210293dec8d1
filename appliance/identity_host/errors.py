"""
Error types for the identity host.

This module defines the failure taxonomy of the startup sequence:
- IdentityHostError: Base exception
- AddressUnavailable: Host platform reported no usable network address
- MigrationFailure: Store could not be advanced to the latest schema version
- AssemblyFailure: Service graph construction or listener binding failed
- UnhandledOrchestrationFailure: Anything else escaping the startup sequence

Invariants:
    - All errors inherit from IdentityHostError
    - Only MigrationFailure is non-fatal to the orchestration unit
    - No error defined here is ever allowed to reach the host process
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class IdentityHostError(Exception):
    """Base exception for all identity host errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "IDENTITY_HOST_ERROR"
        self.details = details or {}


class AddressUnavailable(IdentityHostError):
    """The host platform did not report a usable network address.

    Raised when:
    - The platform query returns nothing
    - The returned value does not parse as an IPv4/IPv6 address
    """

    def __init__(self, message: str, reported: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="ADDRESS_UNAVAILABLE",
            details={"reported": reported},
        )
        self.reported = reported


class MigrationFailure(IdentityHostError):
    """A schema migration step could not be applied.

    Attributes:
        version: Version of the step that failed
        current_version: Version the store was left at
    """

    def __init__(
        self,
        message: str,
        version: Optional[int] = None,
        current_version: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            code="MIGRATION_FAILURE",
            details={"version": version, "current_version": current_version},
        )
        self.version = version
        self.current_version = current_version


class AssemblyFailure(IdentityHostError):
    """The service could not be assembled.

    Raised when:
    - The listener cannot be bound (e.g. port already in use)
    - A service dependency cannot be constructed
    """

    def __init__(self, message: str, address: Optional[str] = None, port: Optional[int] = None) -> None:
        super().__init__(
            message,
            code="ASSEMBLY_FAILURE",
            details={"address": address, "port": port},
        )
        self.address = address
        self.port = port


class UnhandledOrchestrationFailure(IdentityHostError):
    """Catch-all tag for failures escaping the startup sequence."""

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(
            message,
            code="UNHANDLED_ORCHESTRATION_FAILURE",
            details={"cause": type(cause).__name__ if cause else None},
        )
        self.cause = cause


class ProviderNotBoundError(IdentityHostError):
    """A store connection was requested before the provider was bound."""

    def __init__(self, message: str = "Native data provider has not been bound") -> None:
        super().__init__(message, code="PROVIDER_NOT_BOUND")


class ProviderFrozenError(IdentityHostError):
    """An attempt was made to replace the frozen native data provider."""

    def __init__(self, message: str, bound: Optional[str] = None, requested: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="PROVIDER_FROZEN",
            details={"bound": bound, "requested": requested},
        )
        self.bound = bound
        self.requested = requested

"""
Custom Exception Classes for the Storefront Plugin Runtime

This module defines the error taxonomy shared by the plugin registry, the
slot configuration store and the composition resolver, so that every layer
raises (and the HTTP layer renders) the same consistent error shapes.
"""

import enum
from typing import Any

from fastapi import status


class ErrorCode(str, enum.Enum):
    """Machine-readable error codes returned in the `error_code` field."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    AUTH_FAILED = "AUTH_FAILED"
    AUTH_PERMISSION_DENIED = "AUTH_PERMISSION_DENIED"

    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    PLUGIN_NOT_FOUND = "RESOURCE_PLUGIN_NOT_FOUND"
    PLUGIN_DISABLED = "RESOURCE_PLUGIN_DISABLED"
    STORE_NOT_FOUND = "RESOURCE_STORE_NOT_FOUND"
    SLOT_NOT_FOUND = "RESOURCE_SLOT_NOT_FOUND"

    VALIDATION_FAILED = "VALIDATION_FAILED"
    VALIDATION_DUPLICATE_RESOURCE = "VALIDATION_DUPLICATE_RESOURCE"
    DUPLICATE_SLUG = "VALIDATION_DUPLICATE_SLUG"
    CONSTRAINT_VIOLATION = "VALIDATION_CONSTRAINT_VIOLATION"
    STALE_WRITE = "CONFLICT_STALE_WRITE"

    PROTECTED_ITEM = "PROTECTED_NAVIGATION_ITEM"
    PROTECTED_SLOT = "PROTECTED_SLOT"

    CONTROLLER_EXECUTION_FAILED = "CONTROLLER_EXECUTION_FAILED"
    CONTROLLER_TIMEOUT = "CONTROLLER_TIMEOUT"


class StorefrontError(Exception):
    """Base exception class for all runtime errors"""

    error_code: ErrorCode = ErrorCode.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        if error_code is not None:
            self.error_code = error_code
        super().__init__(self.message)


# ============================================================================
# Authentication & Authorization Exceptions
# ============================================================================


class AuthenticationError(StorefrontError):
    """Raised when the bearer token is missing or invalid"""

    error_code = ErrorCode.AUTH_FAILED

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message=message, status_code=status.HTTP_401_UNAUTHORIZED)


class AuthorizationError(StorefrontError):
    """Raised when the caller lacks permission for an action"""

    error_code = ErrorCode.AUTH_PERMISSION_DENIED

    def __init__(self, message: str = "You do not have permission to perform this action", store_id: str | None = None):
        details = {"store_id": store_id} if store_id else {}
        super().__init__(message=message, status_code=status.HTTP_403_FORBIDDEN, details=details)


# ============================================================================
# Resource Not Found Exceptions
# ============================================================================


class NotFoundError(StorefrontError):
    """Base class for resource not found errors"""

    error_code = ErrorCode.RESOURCE_NOT_FOUND

    def __init__(self, resource_type: str, resource_id: Any | None = None, message: str | None = None):
        if message is None:
            message = f"{resource_type} not found"
            if resource_id is not None:
                message = f"{resource_type} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id},
        )


class PluginNotFoundError(NotFoundError):
    """Raised when a plugin does not exist"""

    error_code = ErrorCode.PLUGIN_NOT_FOUND

    def __init__(self, plugin_id: str | None = None):
        super().__init__(resource_type="Plugin", resource_id=plugin_id)


class PluginDisabledError(NotFoundError):
    """Raised when a plugin exists but is not active"""

    error_code = ErrorCode.PLUGIN_DISABLED

    def __init__(self, plugin_id: str, plugin_status: str):
        super().__init__(
            resource_type="Plugin",
            resource_id=plugin_id,
            message=f"Plugin '{plugin_id}' is not active (status: {plugin_status})",
        )
        self.details["status"] = plugin_status


class StoreNotFoundError(NotFoundError):
    """Raised when a store is unknown or not active"""

    error_code = ErrorCode.STORE_NOT_FOUND

    def __init__(self, store_id: str | None = None):
        super().__init__(resource_type="Store", resource_id=store_id)


class SlotNotFoundError(NotFoundError):
    """Raised when a slot id is not present in a configuration"""

    error_code = ErrorCode.SLOT_NOT_FOUND

    def __init__(self, slot_id: str):
        super().__init__(resource_type="Slot", resource_id=slot_id)


# ============================================================================
# Validation & Integrity Exceptions
# ============================================================================


class ValidationError(StorefrontError):
    """Raised when input validation fails, e.g. a malformed slot tree"""

    error_code = ErrorCode.VALIDATION_FAILED

    def __init__(
        self,
        message: str,
        slot_id: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        error_details = details or {}
        if slot_id is not None:
            error_details["slot_id"] = slot_id
        if field:
            error_details["field"] = field
        super().__init__(message=message, status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, details=error_details)
        self.slot_id = slot_id


class DuplicateSlugError(StorefrontError):
    """Raised when a plugin slug collides with another active plugin"""

    error_code = ErrorCode.DUPLICATE_SLUG

    def __init__(self, slug: str, existing_plugin_id: str | None = None):
        super().__init__(
            message=f"Plugin with slug '{slug}' already exists",
            status_code=status.HTTP_409_CONFLICT,
            details={"slug": slug, "existing_plugin_id": existing_plugin_id},
        )


class ConstraintViolationError(StorefrontError):
    """Raised on write-time integrity failures (orphans, version collisions)"""

    error_code = ErrorCode.CONSTRAINT_VIOLATION

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message=message, status_code=status.HTTP_409_CONFLICT, details=details or {})


class StaleWriteError(StorefrontError):
    """Raised when an optimistic concurrency check fails; the caller must re-fetch"""

    error_code = ErrorCode.STALE_WRITE

    def __init__(self, resource_type: str, expected: Any, actual: Any = None):
        super().__init__(
            message=f"{resource_type} was modified concurrently; reload and retry",
            status_code=status.HTTP_409_CONFLICT,
            details={
                "resource_type": resource_type,
                "expected_updated_at": _as_text(expected),
                "current_updated_at": _as_text(actual),
            },
        )


class ProtectedItemError(StorefrontError):
    """Raised when removing or taking over a platform-owned navigation item"""

    error_code = ErrorCode.PROTECTED_ITEM

    def __init__(self, key: str, action: str = "removed"):
        super().__init__(
            message=f"Navigation item '{key}' is a core item and cannot be {action}",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"key": key},
        )


class ProtectedSlotError(StorefrontError):
    """Raised when deleting a slot that is not operator-created"""

    error_code = ErrorCode.PROTECTED_SLOT

    def __init__(self, slot_id: str):
        super().__init__(
            message=f"Slot '{slot_id}' is platform-owned and cannot be deleted",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"slot_id": slot_id},
        )


# ============================================================================
# Plugin Execution Exceptions
# ============================================================================


class ControllerExecutionError(StorefrontError):
    """
    Raised inside the sandbox when stored controller code fails.

    The composition resolver never lets this escape; it is converted into a
    structured payload with `to_payload()` and attached to the failing slot.
    """

    error_code = ErrorCode.CONTROLLER_EXECUTION_FAILED

    def __init__(
        self,
        plugin_id: str,
        controller_name: str,
        message: str,
        timed_out: bool = False,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            details={"plugin_id": plugin_id, "controller_name": controller_name},
            error_code=ErrorCode.CONTROLLER_TIMEOUT if timed_out else None,
        )
        self.plugin_id = plugin_id
        self.controller_name = controller_name
        self.timed_out = timed_out

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": {
                "error_code": self.error_code.value,
                "message": self.message,
                "plugin_id": self.plugin_id,
                "controller_name": self.controller_name,
                "timed_out": self.timed_out,
            }
        }


def _as_text(value: Any) -> Any:
    return value.isoformat() if hasattr(value, "isoformat") else value

"""
Custom exceptions for CATALOG_ENGINE.

Every error raised by the services maps to one kind of the error taxonomy:
not found, duplicate name, unauthorized (ownership or role), validation
rejected, upload failed, persistence failed and compensation failed. Raw
driver errors raised by the storage adapters or the asset store are chained
as ``__cause__`` and never replaced silently.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class CatalogEngineError(RuntimeError):
    """
    Base exception for Catalog Engine errors.

    Attributes:
        message: Error message
        context: Optional dictionary with additional context (entity,
                 entity_id, step, etc.)
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """Return formatted error message with context if available."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} (context: {context_str})"
        return self.message


class InitializationError(CatalogEngineError):
    """
    Raised when the storage backend cannot be opened.

    Attributes:
        backend: Name of the backend that failed to initialize
    """

    def __init__(
        self,
        message: str,
        backend: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if backend:
            context["backend"] = backend
        super().__init__(message, context=context)
        self.backend = backend


class ConfigurationError(CatalogEngineError):
    """
    Raised when configuration is invalid or missing.

    Attributes:
        config_key: Configuration key that caused the error (if available)
        config_value: Configuration value that caused the error (if available)
    """

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        config_value: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if config_key:
            context["config_key"] = config_key
        if config_value is not None:
            context["config_value"] = config_value
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value


class NotFoundError(CatalogEngineError):
    """Raised when an entity does not exist or is no longer active."""

    def __init__(
        self,
        entity: str,
        entity_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context["entity"] = entity
        if entity_id is not None:
            context["entity_id"] = entity_id
        super().__init__(message or f"The {entity} does not exist", context=context)
        self.entity = entity
        self.entity_id = entity_id


class DuplicateNameError(CatalogEngineError):
    """
    Raised when an active record with the same normalized name already exists.

    Attributes:
        entity: Entity label ("category", "product", ...)
        name: Name that was rejected
        existing_id: Id of the conflicting record (if known)
    """

    def __init__(
        self,
        entity: str,
        name: str,
        existing_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context["entity"] = entity
        context["name"] = name
        if existing_id is not None:
            context["existing_id"] = existing_id
        super().__init__(
            message or f"The {entity} with the name '{name}' already exists",
            context=context,
        )
        self.entity = entity
        self.name = name
        self.existing_id = existing_id


class DuplicateEmailError(DuplicateNameError):
    """Raised when an active user already uses the email address."""

    def __init__(self, email: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            "user",
            email,
            message=f"The email {email} is already in use",
            context=context,
        )
        self.email = email


class DenyReason(str, Enum):
    """Reason code attached to an authorization denial."""

    OWNERSHIP = "ownership"
    ROLE = "role"


class UnauthorizedError(CatalogEngineError):
    """
    Raised when the requester may not perform the operation.

    Attributes:
        reason: DenyReason explaining which check failed
    """

    def __init__(
        self,
        message: str,
        reason: DenyReason,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context["reason"] = reason.value
        super().__init__(message, context=context)
        self.reason = reason


class OwnershipError(UnauthorizedError):
    """Raised when the requester is not the owner of the entity."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, DenyReason.OWNERSHIP, context=context)


class RolePermissionError(UnauthorizedError):
    """Raised when the requester's role is not in the allowed set."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, DenyReason.ROLE, context=context)


class ValidationRejectedError(CatalogEngineError):
    """
    Raised for malformed ids, unknown references and rejected field values.

    Attributes:
        field: Offending field (if available)
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        if field:
            context["field"] = field
        super().__init__(message, context=context)
        self.field = field


class AuthenticationError(CatalogEngineError):
    """Raised when credentials are invalid or the account is blocked."""


class AssetRemovalError(CatalogEngineError):
    """
    Raised when the asset store reports that an asset was not removed.

    Attributes:
        key: Key of the asset in the store
        result: Status reported by the store
    """

    def __init__(
        self,
        key: str,
        result: Optional[str],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context["key"] = key
        context["result"] = result
        super().__init__(f"The asset {key} was not removed", context=context)
        self.key = key
        self.result = result


class SagaError(CatalogEngineError):
    """
    Base class for failures of the asset-link saga.

    Attributes:
        step: Saga step that failed ("create", "upload", "link")
        compensated: Whether compensating actions ran successfully
        entity_id: Id of the entity involved (if one was created)
    """

    def __init__(
        self,
        message: str,
        step: str,
        compensated: bool = False,
        entity_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        context = context or {}
        context["step"] = step
        context["compensated"] = compensated
        if entity_id is not None:
            context["entity_id"] = entity_id
        super().__init__(message, context=context)
        self.step = step
        self.compensated = compensated
        self.entity_id = entity_id


class UploadFailedError(SagaError):
    """Raised when the asset store rejects an upload."""

    def __init__(
        self,
        message: str,
        compensated: bool = False,
        entity_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message, step="upload", compensated=compensated, entity_id=entity_id, context=context
        )


class PersistenceFailedError(SagaError):
    """Raised when a storage write inside the saga fails."""


class CompensationFailedError(SagaError):
    """
    Raised when a compensating action fails while rolling back a saga step.

    The primary failure is kept in ``primary_error``; each failed
    compensating action is listed in ``compensation_errors``.

    Attributes:
        primary_error: The saga error that triggered the compensation
        compensation_errors: (action, exception) pairs for each failed rollback
    """

    def __init__(
        self,
        primary_error: SagaError,
        compensation_errors: List[tuple],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        actions = ", ".join(action for action, _ in compensation_errors)
        context = context or {}
        context["primary_error"] = primary_error.message
        context["failed_compensations"] = actions
        super().__init__(
            f"Compensation failed after {primary_error.step} step: {actions}",
            step=primary_error.step,
            compensated=False,
            entity_id=primary_error.entity_id,
            context=context,
        )
        self.primary_error = primary_error
        self.compensation_errors = compensation_errors

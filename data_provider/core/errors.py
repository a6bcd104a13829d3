"""
Domain-specific exceptions for the resource data-access layer.

Every backend raises these so callers can handle failures the same way
regardless of which storage technology served the request.
"""

from typing import Any


class DataProviderError(Exception):
    """Base exception for all data provider errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(DataProviderError):
    """
    Raised when a requested record does not exist.

    Examples:
    - get_one on an unknown id
    - update or delete of a record that was already deleted
    """

    def __init__(self, resource: str, id: Any):
        self.resource = resource
        self.id = id
        super().__init__(
            f"{resource} with id {id} not found",
            details={"resource": resource, "id": id},
        )


class BackendOperationFailed(DataProviderError):
    """
    Raised when the underlying store fails unexpectedly.

    Examples:
    - Connection refused / pool exhausted
    - Malformed query (unknown column, unknown resource table)
    - Constraint violation on insert or update

    The original exception is chained as ``__cause__``.
    """

    def __init__(self, resource: str, operation: str, message: str):
        self.resource = resource
        self.operation = operation
        super().__init__(
            f"Failed to {operation} {resource}: {message}",
            details={"resource": resource, "operation": operation, "error": message},
        )


class UnknownProviderType(DataProviderError):
    """Raised by the factory for an unrecognized provider type."""

    def __init__(self, provider_type: Any):
        self.provider_type = provider_type
        super().__init__(
            f"Unknown data provider type: {provider_type}",
            details={"type": str(provider_type)},
        )


class ConfigurationError(DataProviderError):
    """
    Raised when a provider cannot be built from its configuration.

    Examples:
    - Relational provider requested without a database URL
    """

    pass

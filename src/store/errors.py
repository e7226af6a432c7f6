"""Domain exceptions for the sync store.

This module defines a hierarchy of exceptions for the store layer,
separating infrastructure errors (database issues) from domain errors
(missing rows, failed migrations).
"""


class StateStoreError(Exception):
    """Base exception for all store errors.

    The sync engine catches this class to log and skip a failed storage
    operation without aborting the surrounding cycle.
    """


class ConnectionError(StateStoreError):
    """Raised when database connection fails or is not established."""

    def __init__(self, message: str = "Database not connected") -> None:
        """Initialize the connection error.

        Args:
            message: Human-readable error message.
        """
        super().__init__(message)


class StoreOperationError(StateStoreError):
    """Raised when a SQL statement inside a store transaction fails.

    Wraps the underlying ``sqlite3.Error`` so callers only need to know
    about the store's own exception hierarchy.
    """

    def __init__(self, operation: str, message: str) -> None:
        """Initialize the error.

        Args:
            operation: Name of the store operation that failed.
            message: Underlying database error message.
        """
        self.operation = operation
        super().__init__(f"Store operation '{operation}' failed: {message}")


class MigrationError(StateStoreError):
    """Raised when a schema migration fails."""

    def __init__(self, version: int, message: str) -> None:
        """Initialize the migration error.

        Args:
            version: The migration version that failed.
            message: Human-readable error message.
        """
        self.version = version
        super().__init__(f"Migration {version} failed: {message}")

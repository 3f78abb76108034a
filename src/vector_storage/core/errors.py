"""Exception types raised by the vector storage system."""


class VectorStoreError(Exception):
    """Base error for vector storage operations.

    Attributes:
        operation: Name of the operation that failed (e.g. "insert")
    """

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class VectorDimensionError(VectorStoreError, ValueError):
    """Vector length disagrees with the collection dimension."""

    def __init__(self, expected: int, actual: int, operation: str | None = None) -> None:
        super().__init__(
            f"Vector dimension mismatch: expected {expected}, got {actual}",
            operation,
        )
        self.expected = expected
        self.actual = actual


class InvalidInputError(VectorStoreError, ValueError):
    """Malformed arguments: mismatched lengths, bad ids, unsupported filters."""


class NotConnectedError(VectorStoreError):
    """Operation attempted on a store or index that is not connected."""

    def __init__(self, operation: str | None = None) -> None:
        message = "Vector store is not connected"
        if operation:
            message = f"{message} (operation: {operation})"
        super().__init__(message, operation)


class CapacityExceededError(VectorStoreError):
    """Insert would exceed the configured maximum number of vectors."""

    def __init__(self, capacity: int, requested: int, operation: str = "insert") -> None:
        super().__init__(
            f"Insertion of {requested} vectors would exceed maximum capacity of {capacity}",
            operation,
        )
        self.capacity = capacity
        self.requested = requested


class VectorNotFoundError(VectorStoreError, KeyError):
    """No entry exists for the given id."""

    def __init__(self, vector_id: int, operation: str | None = None) -> None:
        super().__init__(f"Vector with ID {vector_id} not found", operation)
        self.vector_id = vector_id

    def __str__(self) -> str:
        return str(self.args[0])


class BackendConnectionError(VectorStoreError):
    """A storage backend failed to connect."""


class UnknownBackendError(VectorStoreError):
    """Backend type is not registered."""


class DisconnectTimeoutError(VectorStoreError, TimeoutError):
    """Backend shutdown did not complete within the allowed time."""

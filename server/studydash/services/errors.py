"""Error taxonomy shared by the store client and the page controllers.

Classification is done on error messages, because the same message text is
what reaches the user and the logs.
"""

import enum


class ErrorKind(str, enum.Enum):
    UNAUTHENTICATED = "unauthenticated"
    CONNECTION_UNAVAILABLE = "connection_unavailable"
    TRANSIENT_NETWORK = "transient_network"
    PERMISSION_DENIED = "permission_denied"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


# Substrings that mark a failure as a (probably temporary) network problem
NETWORK_MARKERS = ("Failed to fetch", "NetworkError", "connection")


class StoreError(Exception):
    """Base class for failures reported by the content store."""


class StoreConnectionError(StoreError):
    """The store could not be reached."""


class PolicyViolationError(StoreError):
    """A row policy or missing session refused the operation."""


class NotAuthenticatedError(StoreError):
    """The operation requires a signed-in session."""


class QueryError(StoreError):
    """The store rejected the query itself."""


class StorageError(StoreError):
    """A blob storage operation failed."""


class UploadValidationError(Exception):
    """Client-side validation failure; raised before any network call."""

    def __init__(self, title: str, description: str):
        super().__init__(description)
        self.title = title
        self.description = description


def is_transient_network(message: str) -> bool:
    return any(marker in message for marker in NETWORK_MARKERS)


def is_permission_error(message: str) -> bool:
    """Errors that justify the privileged delete fallback."""
    return "permission" in message or "policy" in message


def classify_failure(message: str) -> ErrorKind:
    """Classify a surfaced (no longer retried) failure."""
    if "Failed to fetch" in message or "NetworkError" in message:
        return ErrorKind.TRANSIENT_NETWORK
    if "permission" in message or "not allowed" in message:
        return ErrorKind.PERMISSION_DENIED
    return ErrorKind.UNKNOWN


def describe_fetch_failure(message: str) -> tuple[ErrorKind, str]:
    """User-facing text for a slide list failure."""
    kind = classify_failure(message)
    if kind is ErrorKind.TRANSIENT_NETWORK:
        return kind, "Network connection error. Please check your internet connection and try again."
    if kind is ErrorKind.PERMISSION_DENIED:
        return kind, "You don't have permission to view these slides. Please check your account."
    return kind, f"Failed to load slides: {message}"

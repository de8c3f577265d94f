"""Shared exceptions for service layer operations."""


class ValidationError(Exception):
    """
    Raised when a required field cannot be derived from an external identity.

    For example a profile without a resolvable email address. Raised before any
    repository write, so nothing is committed.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(Exception):
    """
    Raised when a mutation targets an external id with no live user row.

    Also raised for identities that were soft-deleted: a redacted user is a
    terminal state and is never re-created.
    """

    def __init__(self, external_id: str, message: str | None = None) -> None:
        self.external_id = external_id
        super().__init__(message or f"No active user for external id: {external_id}")


class RepositoryError(Exception):
    """
    Raised when a database write returns no row for a reason other than not-found.

    Constraint violations and connection failures end up here. Not retried.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)


class SignatureVerificationError(Exception):
    """Raised when an identity lifecycle notification fails authenticity checks."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class IdentityProviderError(Exception):
    """Raised when a call to the identity provider fails."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

"""
Exception Classes - Strongly typed exception hierarchy.

Every admin-facing error carries a ``kind`` and a ``client_error`` flag so a
transport with a uniform wire format can still tell the failure modes apart.
Best-effort failures (audit writes, identity provider mirroring) are NOT
exceptions; see ``adminops.models.domain.BestEffortResult``.
"""


class AdminError(Exception):
    """Base exception for all administrative command errors."""

    kind: str = "admin_error"
    client_error: bool = False


class ConfigurationError(AdminError):
    """Raised when critical configuration is missing or invalid."""

    kind = "configuration_error"


class InvalidCredentialError(AdminError):
    """Raised when a bearer credential is malformed, expired or forged."""

    kind = "invalid_credential"
    client_error = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid credential: {message}")


class NotAuthorizedError(AdminError):
    """Raised when a verified subject is not an admin."""

    kind = "not_authorized"
    client_error = True

    def __init__(self, uid: str) -> None:
        self.uid = uid
        super().__init__("Unauthorized: Not an admin")


class NotFoundError(AdminError):
    """Raised when a command targets an entity that does not exist."""

    kind = "not_found"
    client_error = True


class UserNotFoundError(NotFoundError):
    """Raised when a user record doesn't exist."""

    def __init__(self, uid: str) -> None:
        self.uid = uid
        super().__init__(f"User not found: {uid}")


class LicenseNotFoundError(NotFoundError):
    """Raised when a license doesn't exist."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"License not found: {key}")


class DocumentNotFoundError(NotFoundError):
    """Raised by the store when updating a document that doesn't exist."""

    def __init__(self, collection: str, doc_id: str) -> None:
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"Document not found: {collection}/{doc_id}")


class InvariantViolationError(AdminError):
    """Raised when a command would break a business invariant."""

    kind = "invariant_violation"
    client_error = True


class CannotBanAdminError(InvariantViolationError):
    """Raised when attempting to ban an admin user."""

    def __init__(self, uid: str) -> None:
        self.uid = uid
        super().__init__(f"Cannot ban admin users: {uid}")


class CannotDeleteAdminError(InvariantViolationError):
    """Raised when attempting to delete an admin user."""

    def __init__(self, uid: str) -> None:
        self.uid = uid
        super().__init__(f"Cannot delete admin users: {uid}")


class InvalidParameterError(AdminError):
    """Raised when command parameters fail validation."""

    kind = "invalid_parameter"
    client_error = True

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(f"Invalid parameter: {message}")

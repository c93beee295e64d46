"""
Authorization Guard - resolves a bearer credential to an admin uid.

Denied attempts by authenticated non-admins are written to the audit trail
before the error is raised, so they stay observable even though the command
never runs.
"""

from structlog import get_logger

from adminops.db.store import DocumentStore
from adminops.exceptions import InvalidCredentialError, NotAuthorizedError, UserNotFoundError
from adminops.models.domain import USERS, AdminAction, UserRecord
from adminops.observability.metrics import metrics
from adminops.services.audit import AuditLogger
from adminops.services.identity import IdentityTokenVerifier

logger = get_logger(__name__)


class AdminGuard:
    """Authorizes callers as admins."""

    def __init__(
        self,
        verifier: IdentityTokenVerifier,
        store: DocumentStore,
        audit: AuditLogger,
    ) -> None:
        self.verifier = verifier
        self.store = store
        self.audit = audit

    async def authorize(self, credential: str) -> str:
        """
        Return the admin uid behind ``credential``.

        Raises:
            InvalidCredentialError: credential fails verification
            UserNotFoundError: verified subject has no user record
            NotAuthorizedError: user record is not an admin
        """
        try:
            identity = self.verifier.verify(credential)
        except InvalidCredentialError:
            metrics.record_authorization_denial("invalid_credential")
            raise

        doc = await self.store.get(USERS, identity.uid)
        if doc is None:
            logger.warning("admin_auth_user_not_found", uid=identity.uid)
            metrics.record_authorization_denial("user_not_found")
            raise UserNotFoundError(identity.uid)

        user = UserRecord.from_document(doc.id, doc.data)
        if not user.is_admin:
            logger.warning("admin_auth_not_admin", uid=user.uid, email=user.email)
            metrics.record_authorization_denial("not_admin")
            await self.audit.record(
                user.uid,
                AdminAction.UNAUTHORIZED_ADMIN_ACCESS,
                {"reason": "Not an admin"},
            )
            raise NotAuthorizedError(user.uid)

        logger.debug("admin_auth_success", uid=user.uid)
        return user.uid

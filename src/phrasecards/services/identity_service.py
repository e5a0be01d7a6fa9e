"""Identity service: accounts, sign-in and identity change notifications."""
import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import AsyncIterator, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from werkzeug.security import check_password_hash, generate_password_hash

from phrasecards import monitoring
from phrasecards.config import settings
from phrasecards.errors import AuthError, ErrorResult, PhrasecardsError, ValidationError
from phrasecards.models.base import as_utc, utcnow
from phrasecards.models.models import Account, PasswordResetToken
from phrasecards.models.progress_models import ProficiencyLevel, default_user_progress_state
from phrasecards.services.document_store import DocumentStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    """A signed-in user."""
    id: str
    email: str
    provider: str = "password"


@dataclass(frozen=True)
class FederatedIdentity:
    """What an external identity provider tells us about a user."""
    subject: str
    email: str


@dataclass
class AuthResult:
    """A ``{user|None, error|None}`` pair."""
    user: Optional[Identity] = None
    error: Optional[PhrasecardsError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


FederatedProvider = Callable[[], FederatedIdentity]
ResetSender = Callable[[str, str], None]
IdentityListener = Callable[[Optional[Identity]], None]


def _normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


class IdentityService:
    """Email/password and federated accounts stored in the database."""

    def __init__(
        self,
        db: Session,
        store: Optional[DocumentStore] = None,
        federated_provider: Optional[FederatedProvider] = None,
        reset_sender: Optional[ResetSender] = None,
    ):
        """Initialize the service with a database session."""
        self.db = db
        self.store = store or DocumentStore(db)
        self.federated_provider = federated_provider
        self.reset_sender = reset_sender
        self._current: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []
        self._queues: List[asyncio.Queue] = []

    @property
    def current_user(self) -> Optional[Identity]:
        return self._current

    def _set_current(self, identity: Optional[Identity]) -> None:
        self._current = identity
        for listener in list(self._listeners):
            listener(identity)
        for queue in list(self._queues):
            queue.put_nowait(identity)

    def add_listener(self, listener: IdentityListener) -> Callable[[], None]:
        """Call ``listener`` on every identity change; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def subscribe(self) -> AsyncIterator[Optional[Identity]]:
        """Yield the current identity, then every change, until the consumer stops."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        try:
            yield self._current
            while True:
                yield await queue.get()
        finally:
            self._queues.remove(queue)

    def _record(self, operation: str, result: AuthResult) -> AuthResult:
        outcome = "success" if result.ok else type(result.error).__name__
        monitoring.auth_events.labels(operation=operation, outcome=outcome).inc()
        if not result.ok:
            logger.info("%s failed: %s", operation, result.error)
        return result

    def _ensure_user_record(self, account: Account) -> None:
        read = self.store.read_user_record(account.id)
        if read.ok:
            return
        if not read.missing:
            # A failed read says nothing about the stored document, so leave it alone
            logger.warning("Could not check user record for %s: %s", account.id, read.error)
            return
        level = ProficiencyLevel(settings.study.default_level)
        created = self.store.create_user_record(
            account.id, account.email, default_user_progress_state(selected_level=level)
        )
        if not created.ok:
            # The account is usable; the record is recreated on the next sign-in
            logger.error("Could not create user record for %s: %s", account.id, created.error)

    def _validate_credentials(self, email: str, password: Optional[str]) -> None:
        if not email or not password:
            raise ValidationError("Email and password are required")

    def register_user(self, email: str, password: str) -> AuthResult:
        """Create an account with email and password and sign it in."""
        email = _normalize_email(email)
        try:
            self._validate_credentials(email, password)
            if len(password) < settings.study.min_password_length:
                raise AuthError(
                    f"Password should be at least {settings.study.min_password_length} characters"
                )
            if self.db.query(Account).filter(Account.email == email).first():
                raise AuthError("Email already in use")
            account = Account(
                id=str(uuid.uuid4()),
                email=email,
                password_hash=generate_password_hash(password),
                provider="password",
            )
            self.db.add(account)
            self.db.commit()
        except PhrasecardsError as e:
            return self._record("register", AuthResult(error=e))
        except SQLAlchemyError as e:
            self.db.rollback()
            return self._record("register", AuthResult(error=AuthError(f"Could not create account: {e}")))

        self._ensure_user_record(account)
        identity = Identity(id=account.id, email=account.email, provider=account.provider)
        logger.info("Registered user %s", account.id)
        self._set_current(identity)
        return self._record("register", AuthResult(user=identity))

    def login_user(self, email: str, password: str) -> AuthResult:
        """Sign in with email and password."""
        email = _normalize_email(email)
        try:
            self._validate_credentials(email, password)
            account = self.db.query(Account).filter(Account.email == email).first()
        except PhrasecardsError as e:
            return self._record("login", AuthResult(error=e))
        except SQLAlchemyError as e:
            self.db.rollback()
            return self._record("login", AuthResult(error=AuthError(f"Could not sign in: {e}")))

        if account is None or not account.password_hash or not check_password_hash(account.password_hash, password):
            return self._record("login", AuthResult(error=AuthError("Invalid email or password")))

        identity = Identity(id=account.id, email=account.email, provider=account.provider)
        logger.info("User %s signed in", account.id)
        self._set_current(identity)
        return self._record("login", AuthResult(user=identity))

    def sign_in_with_federated_provider(self, provider: Optional[FederatedProvider] = None) -> AuthResult:
        """Sign in through an external provider, creating the account on first use."""
        provider = provider or self.federated_provider
        if provider is None:
            return self._record("federated", AuthResult(error=AuthError("No federated provider configured")))
        try:
            federated = provider()
        except Exception as e:
            logger.warning("Federated provider raised %s: %s", type(e).__name__, e)
            return self._record("federated", AuthResult(error=AuthError(f"Provider sign-in failed: {e}")))
        if federated is None or not federated.subject:
            return self._record("federated", AuthResult(error=AuthError("Provider returned no identity")))

        email = _normalize_email(federated.email)
        try:
            account = (
                self.db.query(Account).filter(Account.provider_subject == federated.subject).first()
                or self.db.query(Account).filter(Account.email == email).first()
            )
            if account is None:
                account = Account(
                    id=str(uuid.uuid4()),
                    email=email,
                    provider="federated",
                    provider_subject=federated.subject,
                )
                self.db.add(account)
                logger.info("Created federated account for %s", email)
            elif account.provider_subject is None:
                account.provider_subject = federated.subject
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            return self._record("federated", AuthResult(error=AuthError(f"Could not sign in: {e}")))

        # First sign-in through the provider initialises the user document
        self._ensure_user_record(account)
        identity = Identity(id=account.id, email=account.email, provider="federated")
        self._set_current(identity)
        return self._record("federated", AuthResult(user=identity))

    def reset_password(self, email: str) -> ErrorResult:
        """Issue a one-time password reset token for ``email``."""
        email = _normalize_email(email)
        if not email:
            return ErrorResult(error=ValidationError("Email is required"))
        try:
            account = self.db.query(Account).filter(Account.email == email).first()
            if account is None:
                return ErrorResult(error=AuthError("No account found for this email"))
            token = secrets.token_urlsafe(32)
            self.db.add(
                PasswordResetToken(
                    token=token,
                    account_id=account.id,
                    expires_at=utcnow() + timedelta(hours=settings.study.reset_token_hours),
                )
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            return ErrorResult(error=AuthError(f"Could not start password reset: {e}"))

        logger.info("Password reset requested for %s", account.id)
        monitoring.auth_events.labels(operation="reset_password", outcome="success").inc()
        if self.reset_sender is not None:
            self.reset_sender(email, token)
        return ErrorResult()

    def confirm_password_reset(self, token: str, new_password: str) -> ErrorResult:
        """Set a new password using a token issued by ``reset_password``."""
        if not token or not new_password:
            return ErrorResult(error=ValidationError("Token and password are required"))
        if len(new_password) < settings.study.min_password_length:
            return ErrorResult(
                error=AuthError(f"Password should be at least {settings.study.min_password_length} characters")
            )
        try:
            reset = self.db.query(PasswordResetToken).filter(PasswordResetToken.token == token).first()
            if reset is None or reset.used_at is not None or as_utc(reset.expires_at) < utcnow():
                return ErrorResult(error=AuthError("Reset link is invalid or has expired"))
            reset.account.password_hash = generate_password_hash(new_password)
            reset.used_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            return ErrorResult(error=AuthError(f"Could not reset password: {e}"))
        logger.info("Password reset completed for %s", reset.account_id)
        return ErrorResult()

    def logout(self) -> None:
        """Sign the current user out."""
        if self._current is not None:
            logger.info("User %s signed out", self._current.id)
        self._set_current(None)

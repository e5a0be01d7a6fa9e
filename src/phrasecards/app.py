"""Main application wiring identity, storage and the study session."""
import logging
from dataclasses import replace
from typing import Optional

from sqlalchemy.orm import Session

from phrasecards.config import settings
from phrasecards.errors import ErrorResult, PhrasecardsError
from phrasecards.models.base import SessionLocal, init_db, utcnow
from phrasecards.models.progress_models import (
    Language,
    ProficiencyLevel,
    UserProgressState,
    default_user_progress_state,
)
from phrasecards.models.serialization import UserRecord
from phrasecards.monitoring import start_monitoring
from phrasecards.services.document_store import DocumentStore
from phrasecards.services.identity_service import (
    AuthResult,
    FederatedProvider,
    Identity,
    IdentityService,
    ResetSender,
)
from phrasecards.services.local_cache import LocalCache
from phrasecards.services.persistence_outbox import PersistenceOutbox
from phrasecards.services.progress_tracker import ProgressTracker
from phrasecards.services.session_context import SessionContext
from phrasecards.services.session_controller import SessionController


class PhrasecardsApp:
    """Main application class."""

    def __init__(
        self,
        db: Optional[Session] = None,
        cache: Optional[LocalCache] = None,
        federated_provider: Optional[FederatedProvider] = None,
        reset_sender: Optional[ResetSender] = None,
    ):
        """Initialize the application."""
        self.db = db
        self.cache = cache or LocalCache()
        self.federated_provider = federated_provider
        self.reset_sender = reset_sender
        self.store: Optional[DocumentStore] = None
        self.identity: Optional[IdentityService] = None
        self.outbox: Optional[PersistenceOutbox] = None
        self.context = SessionContext()
        self.tracker: Optional[ProgressTracker] = None
        self.controller: Optional[SessionController] = None
        self.record: Optional[UserRecord] = None
        self.cached_record: Optional[UserRecord] = None
        self.detached = False
        self.last_error: Optional[PhrasecardsError] = None
        self.running = False
        self._owns_db = db is None
        self._unsubscribe = None
        self.logger = logging.getLogger(__name__)

    async def start(self) -> None:
        """Start the application."""
        if self.running:
            return

        try:
            init_db()
            if self.db is None:
                self.db = SessionLocal()
            self.logger.info("Database initialized")

            self.store = DocumentStore(self.db)
            self.identity = IdentityService(
                self.db,
                self.store,
                federated_provider=self.federated_provider,
                reset_sender=self.reset_sender,
            )
            self.outbox = PersistenceOutbox(self.store.write_user_progress)
            await self.outbox.start()
            self._unsubscribe = self.identity.add_listener(self._handle_identity_change)

            # The cache is read ahead of the store so a returning user sees progress at once
            self.cached_record = self.cache.load_user()
            if self.cached_record is not None:
                self.logger.info("Loaded cached user %s", self.cached_record.id)

            if settings.monitoring.enabled:
                start_monitoring(settings.monitoring.port)
                self.logger.info("Metrics exported on port %d", settings.monitoring.port)

            self.running = True
            self.logger.info("Application started")

        except Exception as e:
            self.logger.error("Failed to start application: %s", str(e))
            await self.stop()
            raise

    async def stop(self) -> None:
        """Stop the application."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        if self.outbox is not None:
            await self.outbox.stop()
            self.outbox = None
            self.logger.info("Persistence outbox stopped")

        if self.context.is_open:
            self._close_session(clear_cache=False)

        if self.db is not None and self._owns_db:
            self.db.close()
            self.db = None
            self.logger.info("Database session closed")

        self.running = False

    # Identity

    def register(self, email: str, password: str) -> AuthResult:
        return self.identity.register_user(email, password)

    def login(self, email: str, password: str) -> AuthResult:
        return self.identity.login_user(email, password)

    def sign_in_with_federated_provider(self, provider: Optional[FederatedProvider] = None) -> AuthResult:
        return self.identity.sign_in_with_federated_provider(provider)

    def reset_password(self, email: str) -> ErrorResult:
        return self.identity.reset_password(email)

    async def sign_out(self) -> None:
        """Make pending progress durable, then sign out."""
        if self.outbox is not None:
            await self.outbox.flush()
        self.identity.logout()

    @property
    def sync_pending(self) -> bool:
        return self.outbox is not None and self.outbox.sync_pending

    @property
    def sync_error(self) -> Optional[PhrasecardsError]:
        if self.outbox is not None and self.outbox.last_error is not None:
            return self.outbox.last_error
        return self.last_error

    # Session lifecycle

    def _handle_identity_change(self, identity: Optional[Identity]) -> None:
        if identity is None:
            if self.context.is_open:
                self._close_session(clear_cache=True)
            return
        if self.context.is_open:
            if self.context.user_id == identity.id:
                return
            self._close_session(clear_cache=True)
        self._open_session(identity)

    def _load_record(self, identity: Identity) -> UserRecord:
        read = self.store.read_user_record(identity.id)
        if read.ok:
            return replace(read.record, email=identity.email or read.record.email)

        self.last_error = read.error
        self.logger.warning("Falling back for user %s: %s", identity.id, read.error)
        cached = self.cached_record or self.cache.load_user()
        if cached is not None and cached.id == identity.id:
            self.logger.info("Using cached progress for user %s", identity.id)
            record = cached
        else:
            level = ProficiencyLevel(settings.study.default_level)
            record = UserRecord(
                id=identity.id,
                email=identity.email,
                created_at=utcnow(),
                settings=default_user_progress_state(selected_level=level),
            )

        if not read.missing:
            # A failed read leaves the stored document unknown, so nothing is written over it
            self.logger.warning("Store unavailable for user %s, progress stays local", identity.id)
            self.detached = True
            return record

        created = self.store.create_user_record(record.id, record.email, record.settings)
        if not created.ok:
            self.last_error = created.error
        return record

    def _open_session(self, identity: Identity) -> None:
        self.record = self._load_record(identity)
        self.context.open(identity.id, identity.email)
        self.tracker = ProgressTracker(self.context, self.record.settings, on_change=self._persist)
        self.controller = SessionController(self.context, self.tracker, on_outcome=self._record_outcome)
        self.cache.save_user(self.record)
        self.logger.info("Session ready for user %s", identity.id)

    def _close_session(self, clear_cache: bool) -> None:
        if self.controller is not None:
            self.controller.reset()
        self.context.close()
        self.tracker = None
        self.controller = None
        self.detached = False
        self.record = None
        if clear_cache:
            self.cache.clear_user()
            self.cached_record = None

    def _persist(self, state: UserProgressState) -> None:
        """Write the new state to the cache, then hand it to the outbox.

        A detached session only updates the cache.
        """
        level_changed = state.selected_level != self.record.settings.selected_level
        self.record = replace(self.record, settings=state)
        self.cache.save_user(self.record)
        if self.detached:
            return
        if level_changed:
            result = self.store.write_user_settings(self.record.id, state)
            if not result.ok:
                self.last_error = result.error
                self.logger.warning("Selected level not saved: %s", result.error)
        self.outbox.submit(self.record.id, state.progress)

    def _record_outcome(self, language: Language, question_id: str, outcome: str) -> None:
        result = self.store.write_question_outcome(self.context.require_open(), language, question_id, outcome)
        if not result.ok:
            self.last_error = result.error
            self.logger.warning("Question outcome not saved: %s", result.error)

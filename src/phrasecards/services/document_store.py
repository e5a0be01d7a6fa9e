"""Document store for user records, progress and per-question outcomes."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from phrasecards import monitoring
from phrasecards.errors import ErrorResult, StoreError
from phrasecards.models.base import as_utc, utcnow
from phrasecards.models.models import QuestionOutcome, UserRecord as UserRecordRow
from phrasecards.models.progress_models import Language, LanguageProgress, UserProgressState
from phrasecards.models.serialization import (
    DocumentFormatError,
    UserRecord,
    decode_user_progress_state,
    encode_progress,
    encode_user_progress_state,
    SCHEMA_VERSION,
)

logger = logging.getLogger(__name__)

OUTCOMES = ("success", "failed")


@dataclass
class StoreResult:
    """A ``{record|None, error|None}`` pair.

    ``missing`` is set when there is no usable document for the user, as
    opposed to a read that failed and may succeed later.
    """
    record: Optional[UserRecord] = None
    error: Optional[StoreError] = None
    missing: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class OutcomeResult:
    """A ``{data|None, error|None}`` pair for question outcomes."""
    data: Optional[Any] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _outcome_id(language: Language, question_id: str) -> str:
    return f"{language.value}_{question_id}"


def _outcome_to_dict(row: QuestionOutcome) -> Dict[str, Any]:
    return {
        "questionId": row.question_id,
        "language": row.language,
        "result": row.result,
        "timestamp": as_utc(row.timestamp).isoformat(),
    }


class DocumentStore:
    """User documents kept in the database.

    Every public call returns a result pair; database failures are wrapped in
    ``StoreError`` and never raised to the caller.
    """

    def __init__(self, db: Session):
        """Initialize the store with a database session."""
        self.db = db

    def _fail(self, operation: str, message: str, error: Exception) -> StoreError:
        self.db.rollback()
        monitoring.store_errors.labels(operation=operation).inc()
        logger.error("%s: %s", message, error)
        store_error = StoreError(f"{message}: {error}")
        store_error.__cause__ = error
        return store_error

    def _get_row(self, user_id: str) -> Optional[UserRecordRow]:
        return self.db.query(UserRecordRow).filter(UserRecordRow.user_id == user_id).first()

    def create_user_record(self, user_id: str, email: str, settings: UserProgressState) -> ErrorResult:
        """Create the user document, or replace its settings if it already exists."""
        try:
            row = self._get_row(user_id)
            document = encode_user_progress_state(settings)
            if row is None:
                row = UserRecordRow(user_id=user_id, email=email, settings=document)
                self.db.add(row)
            else:
                row.email = email
                row.settings = document
            self.db.commit()
            monitoring.store_writes.labels(operation="create_user_record").inc()
            logger.info("Created user record for %s", user_id)
            return ErrorResult()
        except SQLAlchemyError as e:
            return ErrorResult(error=self._fail("create_user_record", f"Error creating record for {user_id}", e))

    def read_user_record(self, user_id: str) -> StoreResult:
        """Read and decode a user document."""
        try:
            row = self._get_row(user_id)
        except SQLAlchemyError as e:
            return StoreResult(error=self._fail("read_user_record", f"Error reading record for {user_id}", e))
        if row is None:
            return StoreResult(error=StoreError(f"User data not found for {user_id}"), missing=True)
        try:
            settings = decode_user_progress_state(row.settings)
        except DocumentFormatError as e:
            logger.warning("Stored settings for %s are unreadable: %s", user_id, e)
            error = StoreError(f"Stored settings for {user_id} are unreadable: {e}")
            error.__cause__ = e
            return StoreResult(error=error, missing=True)
        return StoreResult(
            record=UserRecord(
                id=row.user_id,
                email=row.email,
                created_at=as_utc(row.created_at) if row.created_at else utcnow(),
                settings=settings,
            )
        )

    def write_user_progress(self, user_id: str, progress: Mapping[Language, LanguageProgress]) -> ErrorResult:
        """Replace the progress part of the settings document, keeping everything else."""
        try:
            row = self._get_row(user_id)
            if row is None:
                return ErrorResult(error=StoreError(f"User data not found for {user_id}"))
            if row.settings is not None and not isinstance(row.settings, Mapping):
                return ErrorResult(error=StoreError(f"Stored settings for {user_id} are not a document"))
            document = dict(row.settings or {})
            document["progress"] = encode_progress(progress)
            document["schemaVersion"] = SCHEMA_VERSION
            # Assign a new dict so that the JSON column is flagged as changed
            row.settings = document
            self.db.commit()
            monitoring.store_writes.labels(operation="write_user_progress").inc()
            logger.debug("Progress updated for user %s", user_id)
            return ErrorResult()
        except SQLAlchemyError as e:
            return ErrorResult(error=self._fail("write_user_progress", f"Error updating progress for {user_id}", e))

    def write_user_settings(self, user_id: str, settings: UserProgressState) -> ErrorResult:
        """Replace the whole settings document."""
        try:
            row = self._get_row(user_id)
            if row is None:
                return ErrorResult(error=StoreError(f"User data not found for {user_id}"))
            row.settings = encode_user_progress_state(settings)
            self.db.commit()
            monitoring.store_writes.labels(operation="write_user_settings").inc()
            return ErrorResult()
        except SQLAlchemyError as e:
            return ErrorResult(error=self._fail("write_user_settings", f"Error updating settings for {user_id}", e))

    def write_question_outcome(
        self,
        user_id: str,
        language: Language,
        question_id: str,
        outcome: str,
        timestamp: Optional[datetime] = None,
    ) -> ErrorResult:
        """Record the latest outcome of one question.

        Writes are keyed by ``language_questionId`` and merge into an existing
        entry, so retrying the same call is harmless.
        """
        if outcome not in OUTCOMES:
            return ErrorResult(error=StoreError(f"Unknown outcome {outcome!r}"))
        key = _outcome_id(language, question_id)
        try:
            row = (
                self.db.query(QuestionOutcome)
                .filter(QuestionOutcome.user_id == user_id, QuestionOutcome.id == key)
                .first()
            )
            if row is None:
                row = QuestionOutcome(
                    id=key,
                    user_id=user_id,
                    question_id=question_id,
                    language=language.value,
                )
                self.db.add(row)
            row.result = outcome
            row.timestamp = timestamp or utcnow()
            self.db.commit()
            monitoring.store_writes.labels(operation="write_question_outcome").inc()
            return ErrorResult()
        except SQLAlchemyError as e:
            return ErrorResult(
                error=self._fail("write_question_outcome", f"Error saving outcome {key} for {user_id}", e)
            )

    def read_question_outcome(self, user_id: str, language: Language, question_id: str) -> OutcomeResult:
        """Latest outcome of one question, or no data when never answered."""
        try:
            row = (
                self.db.query(QuestionOutcome)
                .filter(
                    QuestionOutcome.user_id == user_id,
                    QuestionOutcome.id == _outcome_id(language, question_id),
                )
                .first()
            )
        except SQLAlchemyError as e:
            return OutcomeResult(error=self._fail("read_question_outcome", f"Error reading outcome for {user_id}", e))
        return OutcomeResult(data=_outcome_to_dict(row) if row else None)

    def list_question_outcomes(self, user_id: str, language: Language) -> OutcomeResult:
        """All recorded outcomes of one language."""
        try:
            rows: List[QuestionOutcome] = (
                self.db.query(QuestionOutcome)
                .filter(QuestionOutcome.user_id == user_id, QuestionOutcome.language == language.value)
                .order_by(QuestionOutcome.timestamp)
                .all()
            )
        except SQLAlchemyError as e:
            return OutcomeResult(error=self._fail("list_question_outcomes", f"Error listing outcomes for {user_id}", e))
        return OutcomeResult(data=[_outcome_to_dict(row) for row in rows])

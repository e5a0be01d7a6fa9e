"""Session controller sequencing cards, answers and failed-phrase review."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional, Sequence, Set, Tuple, Union

from phrasecards import monitoring
from phrasecards.content import phrases_for
from phrasecards.errors import ValidationError
from phrasecards.models.progress_models import (
    FailedPhraseEntry,
    FailedPhrasesFilter,
    Language,
    Phrase,
    ProficiencyLevel,
)
from phrasecards.services.progress_tracker import ProgressTracker
from phrasecards.services.session_context import SessionContext

logger = logging.getLogger(__name__)

Card = Union[Phrase, FailedPhraseEntry]
OutcomeRecorder = Callable[[Language, str, str], None]


class SessionState(Enum):
    """States of a study session."""
    IDLE = "idle"
    STUDYING = "studying"
    ANSWER_REVEALED = "answer_revealed"
    REVIEWING_FAILED = "reviewing_failed"


@dataclass(frozen=True)
class AnswerOutcome:
    """What the learner typed and how it was judged."""
    is_correct: bool
    answer: str
    expected: str


@dataclass(frozen=True)
class AdvanceResult:
    """Result of moving to the next card."""
    level_complete: bool = False
    card: Optional[Card] = None


class SessionController:
    """Holds the ephemeral selection for one learner and drives the tracker."""

    def __init__(
        self,
        context: SessionContext,
        tracker: ProgressTracker,
        on_outcome: Optional[OutcomeRecorder] = None,
        phrase_source: Callable[[Language, ProficiencyLevel], Sequence[Phrase]] = phrases_for,
    ):
        """Initialize the controller for an open session."""
        self.context = context
        self.tracker = tracker
        self.on_outcome = on_outcome
        self.phrase_source = phrase_source

        self.state = SessionState.IDLE
        self.language: Optional[Language] = None
        self.level: Optional[ProficiencyLevel] = None
        self.index = 0
        self.score = 0
        self.review_mode = False
        self.review_filter = FailedPhrasesFilter()
        self.last_outcome: Optional[AnswerOutcome] = None
        self._phrases: Sequence[Phrase] = ()
        self._answered: Optional[Card] = None
        self._seen: Set[Tuple[str, ProficiencyLevel]] = set()

    def _require(self, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise ValidationError(f"Operation not allowed in state {self.state.value} (expected {allowed})")

    def _review_sequence(self) -> List[FailedPhraseEntry]:
        return list(self.tracker.failed_phrases(self.language, self.review_filter))

    def _reset_round(self) -> None:
        self.index = 0
        self.score = 0
        self.last_outcome = None
        self._answered = None
        self._seen = set()

    def select_language_and_level(self, language: Language, level: ProficiencyLevel) -> None:
        """Start studying the phrases of one level."""
        self.context.require_open()
        if not isinstance(language, Language) or not isinstance(level, ProficiencyLevel):
            raise ValidationError(f"Unknown language/level: {language!r}/{level!r}")
        self.language = language
        self.level = level
        self.review_mode = False
        self._phrases = tuple(self.phrase_source(language, level))
        self._reset_round()
        self.tracker.select_level(level)
        self.state = SessionState.STUDYING
        logger.info(
            "User %s studying %s %s (%d phrases)",
            self.context.user_id,
            language.value,
            level.value,
            len(self._phrases),
        )

    def current_phrase(self) -> Optional[Card]:
        """The card on screen, or None when there is nothing to show."""
        if self.state == SessionState.IDLE:
            return None
        if self.state == SessionState.ANSWER_REVEALED:
            return self._answered
        if self.review_mode:
            sequence = self._review_sequence()
            return sequence[self.index] if self.index < len(sequence) else None
        return self._phrases[self.index] if self.index < len(self._phrases) else None

    def sequence_length(self) -> int:
        """Number of cards in the current round."""
        if self.review_mode:
            return len(self._review_sequence())
        return len(self._phrases)

    def progress_fraction(self) -> float:
        """Position of the current card within the round, from 0 to 1."""
        total = self.sequence_length()
        if total == 0 or self.state == SessionState.IDLE:
            return 0.0
        return min(self.index + 1, total) / total

    def submit_answer(self, answer: str) -> AnswerOutcome:
        """Judge the learner's answer for the current card and record it."""
        self._require(SessionState.STUDYING, SessionState.REVIEWING_FAILED)
        card = self.current_phrase()
        if card is None:
            raise ValidationError("There is no card to answer")

        phrase = card.as_phrase() if isinstance(card, FailedPhraseEntry) else card
        level = phrase.level if self.review_mode else self.level
        correct = self.tracker.record(self.language, level, phrase, answer)

        if correct:
            self.score += 1
        self.last_outcome = AnswerOutcome(is_correct=correct, answer=answer.strip(), expected=phrase.original)
        self._answered = card
        self.state = SessionState.ANSWER_REVEALED

        if self.on_outcome is not None:
            # The phrase text doubles as the question id
            self.on_outcome(self.language, phrase.original, "success" if correct else "failed")
        return self.last_outcome

    def advance(self) -> AdvanceResult:
        """Move to the next card, wrapping to the start at the end of a round."""
        self._require(SessionState.ANSWER_REVEALED)
        if self.review_mode:
            return self._advance_review()

        level_complete = False
        if self.index < len(self._phrases) - 1:
            self.index += 1
        else:
            level_complete = True
            self.index = 0
            self.score = 0
            logger.info(
                "User %s completed %s %s, starting over",
                self.context.user_id,
                self.language.value,
                self.level.value,
            )
        self._answered = None
        self.last_outcome = None
        self.state = SessionState.STUDYING
        return AdvanceResult(level_complete=level_complete, card=self.current_phrase())

    def _advance_review(self) -> AdvanceResult:
        if self._answered is not None:
            self._seen.add(self._answered.key)
        sequence = self._review_sequence()
        # Answers can reorder or clear entries, so the next card is the first one not yet shown
        next_index = next((i for i, entry in enumerate(sequence) if entry.key not in self._seen), None)

        level_complete = False
        if next_index is None:
            level_complete = bool(sequence)
            next_index = 0
            self.score = 0
            self._seen = set()
        self.index = next_index
        self._answered = None
        self.last_outcome = None
        self.state = SessionState.REVIEWING_FAILED
        return AdvanceResult(level_complete=level_complete, card=self.current_phrase())

    def enter_failed_phrase_review(
        self, language: Language, filter: Optional[FailedPhrasesFilter] = None
    ) -> None:
        """Switch to reviewing the failed phrases of ``language``."""
        self.context.require_open()
        self._require(SessionState.IDLE, SessionState.ANSWER_REVEALED, SessionState.REVIEWING_FAILED)
        if not isinstance(language, Language):
            raise ValidationError(f"Unknown language: {language!r}")
        self.language = language
        self.review_mode = True
        if filter is not None:
            self.review_filter = filter
        self._reset_round()
        self.state = SessionState.REVIEWING_FAILED
        monitoring.review_sessions.labels(language=language.value).inc()
        logger.info(
            "User %s reviewing %d failed %s phrases",
            self.context.user_id,
            self.sequence_length(),
            language.value,
        )

    def set_review_filter(self, filter: FailedPhrasesFilter) -> None:
        """Change the review filter; the review restarts from the first card."""
        self.review_filter = filter
        if self.review_mode:
            self._reset_round()
            self.state = SessionState.REVIEWING_FAILED

    def back_out(self) -> None:
        """Leave failed-phrase review."""
        if not self.review_mode:
            raise ValidationError("Not reviewing failed phrases")
        self.review_mode = False
        self.language = None
        self.level = None
        self._phrases = ()
        self._reset_round()
        self.state = SessionState.IDLE

    def reset(self) -> None:
        """Return to the idle state, forgetting the selection."""
        self.review_mode = False
        self.language = None
        self.level = None
        self._phrases = ()
        self._reset_round()
        self.state = SessionState.IDLE

"""Progress tracking: folding answers into progress state and querying failed phrases."""
import calendar
import logging
import math
import unicodedata
from dataclasses import replace
from datetime import date, datetime, timedelta, UTC
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from phrasecards import monitoring
from phrasecards.errors import ValidationError
from phrasecards.models.progress_models import (
    ALL_LEVELS,
    DailyStat,
    FailedPhraseEntry,
    FailedPhrasesFilter,
    FailedPhraseStats,
    Language,
    LanguageProgress,
    LevelProgress,
    Phrase,
    ProficiencyLevel,
    SortOrder,
    TimeRange,
    UserProgressState,
)
from phrasecards.services.session_context import SessionContext

logger = logging.getLogger(__name__)


def normalize(text: str) -> str:
    """Lower-case and trim an answer for comparison."""
    return text.strip().lower()


def is_correct_answer(submitted_answer: str, expected: str) -> bool:
    """Exact match after normalization; no partial credit."""
    return normalize(submitted_answer) == normalize(expected)


def _check_language(state: UserProgressState, language: Language) -> None:
    if not isinstance(language, Language) or language not in state.progress:
        raise ValidationError(f"Unknown language: {language!r}")


def _check_level(level: ProficiencyLevel) -> None:
    if not isinstance(level, ProficiencyLevel):
        raise ValidationError(f"Unknown proficiency level: {level!r}")


def _fold_daily_stats(
    stats: Tuple[DailyStat, ...], today: date, level: ProficiencyLevel, correct: bool
) -> Tuple[DailyStat, ...]:
    gained = 1 if correct else 0
    if any(stat.date == today for stat in stats):
        return tuple(
            replace(stat, correct=stat.correct + gained, total=stat.total + 1) if stat.date == today else stat
            for stat in stats
        )
    return stats + (DailyStat(date=today, correct=gained, total=1, level=level),)


def _fold_failed_phrases(
    entries: Tuple[FailedPhraseEntry, ...], phrase: Phrase, today: date, correct: bool
) -> Tuple[FailedPhraseEntry, ...]:
    if correct:
        # A correct answer clears the failure history for this phrase
        return tuple(entry for entry in entries if entry.key != phrase.key)
    if any(entry.key == phrase.key for entry in entries):
        return tuple(
            replace(entry, attempts=entry.attempts + 1, last_attempt_date=today) if entry.key == phrase.key else entry
            for entry in entries
        )
    return entries + (FailedPhraseEntry.first_failure(phrase, today),)


def record_answer(
    state: UserProgressState,
    language: Language,
    level: ProficiencyLevel,
    phrase: Phrase,
    submitted_answer: str,
    now: Optional[datetime] = None,
) -> Tuple[UserProgressState, bool]:
    """Fold one answer into the progress state.

    Returns a new state together with whether the answer was correct. The
    input state is left untouched; all counters, the daily aggregate and the
    failed set of ``language`` are updated together in the returned value.

    Raises:
        ValidationError: ``language``/``level`` are not supported values, or
            ``phrase`` is not a Phrase. These are caller errors.
    """
    _check_language(state, language)
    _check_level(level)
    if not isinstance(phrase, Phrase):
        raise ValidationError(f"Expected a Phrase, got {type(phrase).__name__}")
    if not isinstance(submitted_answer, str):
        raise ValidationError("Submitted answer must be a string")

    now = now or datetime.now(UTC)
    today = now.astimezone(UTC).date()
    correct = is_correct_answer(submitted_answer, phrase.original)
    gained = 1 if correct else 0

    current = state.progress[language]
    counters = current.level_progress[level]
    level_progress = dict(current.level_progress)
    level_progress[level] = LevelProgress(attempted=counters.attempted + 1, correct=counters.correct + gained)

    updated = replace(
        current,
        phrases_studied=current.phrases_studied + 1,
        correct_answers=current.correct_answers + gained,
        last_study_date=now,
        level_progress=level_progress,
        daily_stats=_fold_daily_stats(current.daily_stats, today, level, correct),
        failed_phrases=_fold_failed_phrases(current.failed_phrases, phrase, today, correct),
    )
    progress = dict(state.progress)
    progress[language] = updated
    return replace(state, progress=progress), correct


def collation_key(text: str) -> Tuple[str, str, str]:
    """Sort key that orders accented and cased letters next to their base letter."""
    decomposed = unicodedata.normalize("NFKD", text)
    base = "".join(char for char in decomposed if not unicodedata.combining(char))
    return (base.casefold(), text.casefold(), text)


def months_before(moment: datetime, months: int = 1) -> datetime:
    """The same wall-clock time ``months`` calendar months earlier, clamping the day."""
    years_back, month_index = divmod(moment.month - 1 - months, 12)
    year = moment.year + years_back
    month = month_index + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def _level_predicate(level_filter) -> Callable[[FailedPhraseEntry], bool]:
    if level_filter == ALL_LEVELS:
        return lambda entry: True
    try:
        level = ProficiencyLevel(level_filter)
    except ValueError as e:
        raise ValidationError(f"Unknown level filter: {level_filter!r}") from e
    return lambda entry: entry.level == level


def _time_predicate(time_range: TimeRange, now: datetime) -> Callable[[FailedPhraseEntry], bool]:
    try:
        time_range = TimeRange(time_range)
    except ValueError as e:
        raise ValidationError(f"Unknown time range: {time_range!r}") from e
    today = now.date()
    if time_range == TimeRange.TODAY:
        return lambda entry: entry.last_attempt_date == today
    if time_range == TimeRange.WEEK:
        week_start = (now - timedelta(days=7)).date()
        return lambda entry: entry.last_attempt_date >= week_start
    if time_range == TimeRange.MONTH:
        month_start = months_before(now).date()
        return lambda entry: entry.last_attempt_date >= month_start
    return lambda entry: True


def _sort(entries: List[FailedPhraseEntry], sort_by: SortOrder) -> List[FailedPhraseEntry]:
    try:
        sort_by = SortOrder(sort_by)
    except ValueError as e:
        raise ValidationError(f"Unknown sort order: {sort_by!r}") from e
    if sort_by == SortOrder.RECENT:
        return sorted(entries, key=lambda entry: entry.last_attempt_date, reverse=True)
    if sort_by == SortOrder.ATTEMPTS:
        return sorted(entries, key=lambda entry: entry.attempts, reverse=True)
    return sorted(entries, key=lambda entry: collation_key(entry.original))


def _iter_failed(entries: List[FailedPhraseEntry]) -> Iterator[FailedPhraseEntry]:
    yield from entries


def query_failed_phrases(
    state: UserProgressState,
    language: Language,
    filter: Optional[FailedPhrasesFilter] = None,
    now: Optional[datetime] = None,
) -> Iterator[FailedPhraseEntry]:
    """Failed phrases of ``language`` matching ``filter``, in the requested order.

    Filtering (level and time range must both hold) happens before a stable
    sort. Every call recomputes the sequence from ``state``; nothing is cached
    and the state is not modified.
    """
    _check_language(state, language)
    filter = filter or FailedPhrasesFilter()
    now = (now or datetime.now(UTC)).astimezone(UTC)
    level_ok = _level_predicate(filter.level)
    time_ok = _time_predicate(filter.time_range, now)
    matching = [
        entry for entry in state.progress[language].failed_phrases
        if level_ok(entry) and time_ok(entry)
    ]
    return _iter_failed(_sort(matching, filter.sort_by))


def level_accuracy(counters: LevelProgress) -> int:
    """Percentage of correct answers, rounded half up; 0 before any attempt."""
    if counters.attempted == 0:
        return 0
    return math.floor(counters.correct * 100 / counters.attempted + 0.5)


def failed_count_for_level(state: UserProgressState, language: Language, level: ProficiencyLevel) -> int:
    """Failed phrases of one level, regardless of when they were attempted."""
    _check_language(state, language)
    return sum(1 for entry in state.progress[language].failed_phrases if entry.level == level)


def failed_phrase_stats(
    state: UserProgressState,
    language: Language,
    filter: Optional[FailedPhrasesFilter] = None,
    now: Optional[datetime] = None,
) -> FailedPhraseStats:
    """Totals over the filtered failed phrases.

    The average divides by the size of the whole failed set, matching what the
    review panel has always shown.
    """
    entries = list(query_failed_phrases(state, language, filter, now))
    total_failed = len(state.progress[language].failed_phrases)
    total_attempts = sum(entry.attempts for entry in entries)
    by_level: Dict[ProficiencyLevel, int] = {level: 0 for level in ProficiencyLevel}
    for entry in entries:
        by_level[entry.level] += 1
    return FailedPhraseStats(
        count=len(entries),
        total_attempts=total_attempts,
        average_attempts=round(total_attempts / total_failed, 1) if total_failed else 0.0,
        most_failed=max((entry.attempts for entry in entries), default=0),
        by_level=by_level,
    )


class ProgressTracker:
    """Owns one session's progress state and is its only mutator."""

    def __init__(
        self,
        context: SessionContext,
        state: UserProgressState,
        on_change: Optional[Callable[[UserProgressState], None]] = None,
    ):
        """Initialize the tracker for an open session."""
        self.context = context
        self._state = state
        self.on_change = on_change

    @property
    def state(self) -> UserProgressState:
        return self._state

    def language_progress(self, language: Language) -> LanguageProgress:
        _check_language(self._state, language)
        return self._state.progress[language]

    def _commit(self, state: UserProgressState) -> None:
        self._state = state
        if self.on_change is not None:
            self.on_change(state)

    def record(
        self,
        language: Language,
        level: ProficiencyLevel,
        phrase: Phrase,
        submitted_answer: str,
        now: Optional[datetime] = None,
    ) -> bool:
        """Fold an answer into the session state and publish the new snapshot."""
        self.context.require_open()
        state, correct = record_answer(self._state, language, level, phrase, submitted_answer, now)
        result = "success" if correct else "failed"
        monitoring.answers_recorded.labels(language=language.value, result=result).inc()
        monitoring.failed_phrases.labels(language=language.value).set(
            len(state.progress[language].failed_phrases)
        )
        logger.debug(
            "User %s answered %r (%s %s): %s",
            self.context.user_id,
            phrase.original,
            language.value,
            level.value,
            result,
        )
        self._commit(state)
        return correct

    def select_level(self, level: ProficiencyLevel) -> None:
        """Remember the learner's last selected level."""
        self.context.require_open()
        _check_level(level)
        if level != self._state.selected_level:
            self._commit(replace(self._state, selected_level=level))

    def failed_phrases(
        self,
        language: Language,
        filter: Optional[FailedPhrasesFilter] = None,
        now: Optional[datetime] = None,
    ) -> Iterator[FailedPhraseEntry]:
        return query_failed_phrases(self._state, language, filter, now)

    def failed_stats(
        self,
        language: Language,
        filter: Optional[FailedPhrasesFilter] = None,
        now: Optional[datetime] = None,
    ) -> FailedPhraseStats:
        return failed_phrase_stats(self._state, language, filter, now)

    def level_summary(self, language: Language) -> Mapping[ProficiencyLevel, Tuple[LevelProgress, int]]:
        """Counters and accuracy per level for one language."""
        progress = self.language_progress(language)
        return {level: (counters, level_accuracy(counters)) for level, counters in progress.level_progress.items()}

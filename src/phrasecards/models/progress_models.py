"""Value types for study progress and failed-phrase review."""
from dataclasses import dataclass, field
from datetime import date, datetime, UTC
from enum import Enum
from types import MappingProxyType
from typing import Mapping, Optional, Tuple, Union


class ProficiencyLevel(str, Enum):
    """CEFR proficiency levels, in ascending order.

    The values sort lexicographically in level order.
    """
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"


class Language(str, Enum):
    """Languages that can be studied."""
    SWEDISH = "Swedish"
    GERMAN = "German"


class TimeRange(str, Enum):
    """Time window applied to failed phrases."""
    ALL = "all"
    TODAY = "today"
    WEEK = "week"
    MONTH = "month"


class SortOrder(str, Enum):
    """Ordering of failed phrases."""
    RECENT = "recent"  # most recent attempt first
    ATTEMPTS = "attempts"  # most attempts first
    ALPHABETICAL = "alphabetical"


ALL_LEVELS = "all"

LevelFilter = Union[ProficiencyLevel, str]


@dataclass(frozen=True)
class Phrase:
    """A static source/target text pair with its proficiency level."""
    original: str
    english: str
    audio_ref: str
    level: ProficiencyLevel

    @property
    def key(self) -> Tuple[str, ProficiencyLevel]:
        return (self.original, self.level)


@dataclass(frozen=True)
class FailedPhraseEntry:
    """A phrase most recently answered incorrectly, with its attempt count."""
    original: str
    english: str
    audio_ref: str
    level: ProficiencyLevel
    attempts: int
    last_attempt_date: date

    @property
    def key(self) -> Tuple[str, ProficiencyLevel]:
        return (self.original, self.level)

    @classmethod
    def first_failure(cls, phrase: Phrase, today: date) -> "FailedPhraseEntry":
        return cls(
            original=phrase.original,
            english=phrase.english,
            audio_ref=phrase.audio_ref,
            level=phrase.level,
            attempts=1,
            last_attempt_date=today,
        )

    def as_phrase(self) -> Phrase:
        return Phrase(self.original, self.english, self.audio_ref, self.level)


@dataclass(frozen=True)
class LevelProgress:
    """Attempted/correct counters for one level of one language."""
    attempted: int = 0
    correct: int = 0


@dataclass(frozen=True)
class DailyStat:
    """Answers given on one calendar date."""
    date: date
    correct: int
    total: int
    level: ProficiencyLevel


@dataclass(frozen=True)
class LanguageProgress:
    """Aggregate study progress for one language."""
    phrases_studied: int
    correct_answers: int
    last_study_date: datetime
    level_progress: Mapping[ProficiencyLevel, LevelProgress]
    daily_stats: Tuple[DailyStat, ...] = ()
    failed_phrases: Tuple[FailedPhraseEntry, ...] = ()

    def __post_init__(self):
        # Freeze the mapping so that folds cannot be bypassed
        object.__setattr__(self, "level_progress", MappingProxyType(dict(self.level_progress)))


@dataclass(frozen=True)
class UserProgressState:
    """Selected level plus progress for every supported language."""
    selected_level: ProficiencyLevel
    progress: Mapping[Language, LanguageProgress]

    def __post_init__(self):
        object.__setattr__(self, "progress", MappingProxyType(dict(self.progress)))


@dataclass(frozen=True)
class FailedPhrasesFilter:
    """Filter and ordering for a failed-phrase review."""
    level: LevelFilter = ALL_LEVELS
    time_range: TimeRange = TimeRange.ALL
    sort_by: SortOrder = SortOrder.RECENT


@dataclass(frozen=True)
class FailedPhraseStats:
    """Summary of the failed phrases matching a filter."""
    count: int
    total_attempts: int
    average_attempts: float
    most_failed: int
    by_level: Mapping[ProficiencyLevel, int] = field(default_factory=dict)


def default_level_progress() -> Mapping[ProficiencyLevel, LevelProgress]:
    """Zeroed counters for all six levels."""
    return {level: LevelProgress() for level in ProficiencyLevel}


def default_language_progress(now: Optional[datetime] = None) -> LanguageProgress:
    """A fresh, empty progress record for one language."""
    return LanguageProgress(
        phrases_studied=0,
        correct_answers=0,
        last_study_date=now or datetime.now(UTC),
        level_progress=default_level_progress(),
    )


def default_user_progress_state(
    now: Optional[datetime] = None,
    selected_level: ProficiencyLevel = ProficiencyLevel.A1,
) -> UserProgressState:
    """A fresh state with empty progress for every language."""
    now = now or datetime.now(UTC)
    return UserProgressState(
        selected_level=selected_level,
        progress={language: default_language_progress(now) for language in Language},
    )

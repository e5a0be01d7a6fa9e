"""Versioned boundary between stored documents and progress value types.

Documents use the camelCase shape the store has always held::

    {"schemaVersion": 1, "selectedLevel": "A1",
     "progress": {"Swedish": {"phrasesStudied": 0, ...}, "German": {...}}}

Decoding is strict about structure and lenient about content: a document that
is not a mapping, or that comes from a newer schema, is rejected with
``DocumentFormatError``. Inside an accepted document, a language whose
counters are unusable is replaced by a fresh record, and individual daily
stats or failed phrases that cannot be read are dropped. Each repair is
logged. Documents written before versioning (no ``schemaVersion``) are read
as version 0, which has the same shape.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, UTC
from typing import Any, Dict, List, Mapping, Optional

from phrasecards.errors import ValidationError
from phrasecards.models.progress_models import (
    DailyStat,
    FailedPhraseEntry,
    Language,
    LanguageProgress,
    LevelProgress,
    ProficiencyLevel,
    UserProgressState,
    default_language_progress,
    default_user_progress_state,
)

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1


class DocumentFormatError(ValidationError):
    """A stored document cannot be read as progress state."""


@dataclass(frozen=True)
class UserRecord:
    """The user document as the application sees it."""
    id: str
    email: str
    created_at: datetime
    settings: UserProgressState


def _iso_datetime(value: datetime) -> str:
    return value.astimezone(UTC).isoformat()


def _parse_datetime(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"expected ISO timestamp, got {value!r}")
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _parse_date(value: Any) -> date:
    if not isinstance(value, str):
        raise ValueError(f"expected ISO date, got {value!r}")
    # Older documents may carry a full timestamp here
    return date.fromisoformat(value[:10])


def _counter(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"expected non-negative integer, got {value!r}")
    return value


def encode_language_progress(progress: LanguageProgress) -> Dict[str, Any]:
    """Convert one language's progress to its document form."""
    return {
        "phrasesStudied": progress.phrases_studied,
        "correctAnswers": progress.correct_answers,
        "lastStudyDate": _iso_datetime(progress.last_study_date),
        "levelProgress": {
            level.value: {"attempted": counters.attempted, "correct": counters.correct}
            for level, counters in progress.level_progress.items()
        },
        "dailyStats": [
            {
                "date": stat.date.isoformat(),
                "correct": stat.correct,
                "total": stat.total,
                "level": stat.level.value,
            }
            for stat in progress.daily_stats
        ],
        "failedPhrases": [
            {
                "original": entry.original,
                "english": entry.english,
                "audioUrl": entry.audio_ref,
                "level": entry.level.value,
                "attempts": entry.attempts,
                "lastAttemptDate": entry.last_attempt_date.isoformat(),
            }
            for entry in progress.failed_phrases
        ],
    }


def encode_progress(progress: Mapping[Language, LanguageProgress]) -> Dict[str, Any]:
    """Convert the per-language progress mapping to its document form."""
    return {language.value: encode_language_progress(item) for language, item in progress.items()}


def encode_user_progress_state(state: UserProgressState) -> Dict[str, Any]:
    """Convert a whole progress state to a versioned settings document."""
    return {
        "schemaVersion": SCHEMA_VERSION,
        "selectedLevel": state.selected_level.value,
        "progress": encode_progress(state.progress),
    }


def _decode_level_progress(raw: Any) -> Dict[ProficiencyLevel, LevelProgress]:
    levels = {level: LevelProgress() for level in ProficiencyLevel}
    if raw is None:
        return levels
    if not isinstance(raw, Mapping):
        raise ValueError("levelProgress must be a mapping")
    for level in ProficiencyLevel:
        counters = raw.get(level.value)
        if counters is None:
            continue
        attempted = _counter(counters.get("attempted", 0))
        correct = _counter(counters.get("correct", 0))
        if correct > attempted:
            raise ValueError(f"level {level.value}: correct exceeds attempted")
        levels[level] = LevelProgress(attempted=attempted, correct=correct)
    return levels


def _decode_daily_stats(raw: Any, language: str) -> List[DailyStat]:
    stats: List[DailyStat] = []
    seen = set()
    for item in raw or []:
        try:
            stat = DailyStat(
                date=_parse_date(item["date"]),
                correct=_counter(item["correct"]),
                total=_counter(item["total"]),
                level=ProficiencyLevel(item["level"]),
            )
            if stat.correct > stat.total:
                raise ValueError("correct exceeds total")
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Dropping unreadable daily stat for %s: %s", language, e)
            continue
        if stat.date in seen:
            logger.warning("Dropping duplicate daily stat for %s on %s", language, stat.date)
            continue
        seen.add(stat.date)
        stats.append(stat)
    return stats


def _decode_failed_phrases(raw: Any, language: str) -> List[FailedPhraseEntry]:
    entries: List[FailedPhraseEntry] = []
    seen = set()
    for item in raw or []:
        try:
            entry = FailedPhraseEntry(
                original=str(item["original"]),
                english=str(item.get("english", "")),
                audio_ref=str(item.get("audioUrl", item.get("audioRef", ""))),
                level=ProficiencyLevel(item["level"]),
                attempts=_counter(item["attempts"]),
                last_attempt_date=_parse_date(item["lastAttemptDate"]),
            )
            if entry.attempts < 1:
                raise ValueError("attempts must be positive")
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Dropping unreadable failed phrase for %s: %s", language, e)
            continue
        if entry.key in seen:
            logger.warning("Dropping duplicate failed phrase %r for %s", entry.original, language)
            continue
        seen.add(entry.key)
        entries.append(entry)
    return entries


def decode_language_progress(raw: Any, language: str, now: Optional[datetime] = None) -> LanguageProgress:
    """Read one language's progress, defaulting it when unusable."""
    if raw is None:
        return default_language_progress(now)
    try:
        if not isinstance(raw, Mapping):
            raise ValueError("progress entry must be a mapping")
        studied = _counter(raw.get("phrasesStudied", 0))
        correct = _counter(raw.get("correctAnswers", 0))
        if correct > studied:
            raise ValueError("correctAnswers exceeds phrasesStudied")
        last_study = raw.get("lastStudyDate")
        return LanguageProgress(
            phrases_studied=studied,
            correct_answers=correct,
            last_study_date=_parse_datetime(last_study) if last_study else (now or datetime.now(UTC)),
            level_progress=_decode_level_progress(raw.get("levelProgress")),
            daily_stats=tuple(_decode_daily_stats(raw.get("dailyStats"), language)),
            failed_phrases=tuple(_decode_failed_phrases(raw.get("failedPhrases"), language)),
        )
    except (AttributeError, TypeError, ValueError) as e:
        logger.warning("Resetting unreadable progress for %s: %s", language, e)
        return default_language_progress(now)


def decode_progress(raw: Any, now: Optional[datetime] = None) -> Dict[Language, LanguageProgress]:
    """Read the per-language progress mapping; every language is present."""
    if raw is not None and not isinstance(raw, Mapping):
        raise DocumentFormatError("progress must be a mapping")
    raw = raw or {}
    return {
        language: decode_language_progress(raw.get(language.value), language.value, now)
        for language in Language
    }


def decode_user_progress_state(document: Any, now: Optional[datetime] = None) -> UserProgressState:
    """Read a settings document into a progress state.

    Raises:
        DocumentFormatError: the document is not a mapping, has an unknown
            schema version, or its progress is not a mapping.
    """
    if not isinstance(document, Mapping):
        raise DocumentFormatError("settings document must be a mapping")
    version = document.get("schemaVersion", 0)
    if not isinstance(version, int) or isinstance(version, bool) or version > SCHEMA_VERSION or version < 0:
        raise DocumentFormatError(f"unsupported schema version {version!r}")
    try:
        selected_level = ProficiencyLevel(document.get("selectedLevel", ProficiencyLevel.A1.value))
    except ValueError:
        logger.warning("Unknown selected level %r, using A1", document.get("selectedLevel"))
        selected_level = ProficiencyLevel.A1
    return UserProgressState(
        selected_level=selected_level,
        progress=decode_progress(document.get("progress"), now),
    )


def encode_user_record(record: UserRecord) -> Dict[str, Any]:
    """Convert a user record to the cached ``{id, email, createdAt, settings}`` shape."""
    return {
        "id": record.id,
        "email": record.email,
        "createdAt": _iso_datetime(record.created_at),
        "settings": encode_user_progress_state(record.settings),
    }


def decode_user_record(document: Any, now: Optional[datetime] = None) -> UserRecord:
    """Read a cached user record."""
    if not isinstance(document, Mapping):
        raise DocumentFormatError("user record must be a mapping")
    try:
        user_id = document["id"]
        email = document.get("email") or ""
        created_at = _parse_datetime(document["createdAt"]) if document.get("createdAt") else (now or datetime.now(UTC))
    except (KeyError, ValueError) as e:
        raise DocumentFormatError(f"unreadable user record: {e}") from e
    if not isinstance(user_id, str) or not user_id:
        raise DocumentFormatError("user record id must be a non-empty string")
    raw_settings = document.get("settings")
    return UserRecord(
        id=user_id,
        email=email,
        created_at=created_at,
        settings=(
            default_user_progress_state(now)
            if raw_settings is None
            else decode_user_progress_state(raw_settings, now)
        ),
    )

"""Tests for reading and writing stored progress documents."""
from datetime import date, datetime, UTC

import pytest

from phrasecards.content import phrases_for
from phrasecards.models.progress_models import (
    FailedPhraseEntry,
    Language,
    LevelProgress,
    ProficiencyLevel,
    default_user_progress_state,
)
from phrasecards.models.serialization import (
    SCHEMA_VERSION,
    DocumentFormatError,
    UserRecord,
    decode_language_progress,
    decode_user_progress_state,
    decode_user_record,
    encode_user_progress_state,
    encode_user_record,
)
from phrasecards.services.progress_tracker import record_answer

NOW = datetime(2024, 5, 14, 10, 30, tzinfo=UTC)


def studied_state():
    """A state with some answers folded in."""
    state = default_user_progress_state(NOW)
    hej, tack = phrases_for(Language.SWEDISH, ProficiencyLevel.A1)[:2]
    state, _ = record_answer(state, Language.SWEDISH, ProficiencyLevel.A1, hej, "hej", now=NOW)
    state, _ = record_answer(state, Language.SWEDISH, ProficiencyLevel.A1, tack, "tak", now=NOW)
    return state


def test_encode_uses_document_field_names() -> None:
    """Encoded documents carry the stored camelCase shape."""
    document = encode_user_progress_state(studied_state())

    assert document["schemaVersion"] == SCHEMA_VERSION
    assert document["selectedLevel"] == "A1"
    swedish = document["progress"]["Swedish"]
    assert swedish["phrasesStudied"] == 2
    assert swedish["correctAnswers"] == 1
    assert swedish["levelProgress"]["A1"] == {"attempted": 2, "correct": 1}
    assert swedish["dailyStats"] == [{"date": "2024-05-14", "correct": 1, "total": 2, "level": "A1"}]
    assert swedish["failedPhrases"] == [
        {
            "original": "Tack",
            "english": "Thank you",
            "audioUrl": "/audio/sv/tack.mp3",
            "level": "A1",
            "attempts": 1,
            "lastAttemptDate": "2024-05-14",
        }
    ]
    assert set(document["progress"]) == {"Swedish", "German"}


def test_decode_restores_state() -> None:
    """A written state reads back equal."""
    state = studied_state()
    assert decode_user_progress_state(encode_user_progress_state(state)) == state


def test_decode_unversioned_document() -> None:
    """Documents without a version are read with the same shape."""
    document = {
        "selectedLevel": "B1",
        "progress": {
            "Swedish": {
                "phrasesStudied": 3,
                "correctAnswers": 2,
                "lastStudyDate": "2024-05-01T08:00:00.000Z",
                "levelProgress": {"A1": {"attempted": 3, "correct": 2}},
                "failedPhrases": [
                    {
                        "original": "Nej",
                        "english": "No",
                        "audioUrl": "/audio/sv/nej.mp3",
                        "level": "A1",
                        "attempts": 2,
                        "lastAttemptDate": "2024-05-01T08:00:00.000Z",
                    }
                ],
            }
        },
    }

    state = decode_user_progress_state(document, now=NOW)

    assert state.selected_level == ProficiencyLevel.B1
    swedish = state.progress[Language.SWEDISH]
    assert swedish.phrases_studied == 3
    assert swedish.last_study_date == datetime(2024, 5, 1, 8, 0, tzinfo=UTC)
    assert swedish.level_progress[ProficiencyLevel.A1] == LevelProgress(attempted=3, correct=2)
    assert swedish.level_progress[ProficiencyLevel.C2] == LevelProgress()
    assert swedish.failed_phrases == (
        FailedPhraseEntry("Nej", "No", "/audio/sv/nej.mp3", ProficiencyLevel.A1, 2, date(2024, 5, 1)),
    )
    # Missing languages start empty
    assert state.progress[Language.GERMAN].phrases_studied == 0


def test_decode_rejects_bad_documents() -> None:
    """Non-mappings and newer schema versions are refused."""
    with pytest.raises(DocumentFormatError):
        decode_user_progress_state(["not", "a", "mapping"])
    with pytest.raises(DocumentFormatError):
        decode_user_progress_state({"schemaVersion": SCHEMA_VERSION + 1, "progress": {}})
    with pytest.raises(DocumentFormatError):
        decode_user_progress_state({"schemaVersion": 1, "progress": "oops"})


def test_unknown_selected_level_defaults() -> None:
    """An unknown selected level falls back to A1."""
    state = decode_user_progress_state({"schemaVersion": 1, "selectedLevel": "D4"})
    assert state.selected_level == ProficiencyLevel.A1


def test_bad_language_entry_is_reset() -> None:
    """Inconsistent counters reset that language only."""
    progress = decode_language_progress(
        {"phrasesStudied": 1, "correctAnswers": 5}, "Swedish", now=NOW
    )
    assert progress.phrases_studied == 0
    assert progress.correct_answers == 0
    assert progress.last_study_date == NOW


def test_bad_items_are_dropped() -> None:
    """Unreadable or duplicate items are skipped, the rest is kept."""
    raw = {
        "phrasesStudied": 4,
        "correctAnswers": 1,
        "dailyStats": [
            {"date": "2024-05-13", "correct": 1, "total": 2, "level": "A1"},
            {"date": "2024-05-13", "correct": 0, "total": 2, "level": "A1"},
            {"date": "yesterday", "correct": 0, "total": 1, "level": "A1"},
        ],
        "failedPhrases": [
            {"original": "Ja", "level": "A1", "attempts": 1, "lastAttemptDate": "2024-05-13"},
            {"original": "Ja", "level": "A1", "attempts": 3, "lastAttemptDate": "2024-05-13"},
            {"original": "Nej", "level": "Z9", "attempts": 1, "lastAttemptDate": "2024-05-13"},
            {"original": "Tack", "level": "A1", "attempts": 0, "lastAttemptDate": "2024-05-13"},
            "garbage",
        ],
    }

    progress = decode_language_progress(raw, "Swedish", now=NOW)

    assert [(s.date, s.total) for s in progress.daily_stats] == [(date(2024, 5, 13), 2)]
    assert [(e.original, e.attempts) for e in progress.failed_phrases] == [("Ja", 1)]
    assert progress.phrases_studied == 4


def test_user_record_round_trip() -> None:
    """Cached user records keep identity and settings."""
    record = UserRecord(id="user-1", email="a@example.com", created_at=NOW, settings=studied_state())

    document = encode_user_record(record)
    assert document["createdAt"] == "2024-05-14T10:30:00+00:00"
    assert decode_user_record(document) == record


def test_user_record_without_settings() -> None:
    """A record without settings gets a fresh state."""
    record = decode_user_record({"id": "user-1", "email": "a@example.com"}, now=NOW)

    assert record.created_at == NOW
    assert record.settings == default_user_progress_state(NOW)


def test_user_record_requires_id() -> None:
    """Records without an id are unreadable."""
    with pytest.raises(DocumentFormatError):
        decode_user_record({"email": "a@example.com"})
    with pytest.raises(DocumentFormatError):
        decode_user_record("user-1")

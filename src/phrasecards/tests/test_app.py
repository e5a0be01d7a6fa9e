"""Tests for the main application."""
from pathlib import Path
from unittest.mock import patch

import pytest
from faker import Faker

from phrasecards.app import PhrasecardsApp
from phrasecards.config import settings
from phrasecards.errors import StoreError
from phrasecards.models.base import drop_db, init_db
from phrasecards.models.models import QuestionOutcome, UserRecord as UserRecordRow
from phrasecards.models.progress_models import Language, ProficiencyLevel
from phrasecards.services.identity_service import FederatedIdentity
from phrasecards.services.document_store import StoreResult
from phrasecards.services.local_cache import LocalCache
from phrasecards.services.session_controller import SessionState

fake = Faker()

SWEDISH = Language.SWEDISH
A1 = ProficiencyLevel.A1


@pytest.fixture
def tables():
    """Create the tables and drop them afterwards."""
    init_db()
    yield
    drop_db()


@pytest.fixture
def cache_path(tmp_path: Path) -> Path:
    return tmp_path / "local_storage.json"


@pytest.fixture
async def app(tables, cache_path: Path) -> PhrasecardsApp:
    """Create a started application."""
    app = PhrasecardsApp(cache=LocalCache(cache_path))
    await app.start()
    yield app
    await app.stop()


@pytest.mark.asyncio
async def test_start_and_stop(tables, cache_path: Path) -> None:
    """Test starting and stopping the application."""
    app = PhrasecardsApp(cache=LocalCache(cache_path))
    await app.start()

    assert app.running
    assert app.store is not None
    assert app.identity is not None
    assert app.outbox.running
    assert app.controller is None

    await app.stop()

    assert not app.running
    assert app.outbox is None
    assert app.db is None


@pytest.mark.asyncio
async def test_start_with_monitoring(tables, cache_path: Path, monkeypatch) -> None:
    """The metrics exporter starts when enabled."""
    monkeypatch.setattr(settings.monitoring, "enabled", True)
    with patch("phrasecards.app.start_monitoring") as start_monitoring:
        app = PhrasecardsApp(cache=LocalCache(cache_path))
        await app.start()
        await app.stop()

    start_monitoring.assert_called_once_with(settings.monitoring.port)


@pytest.mark.asyncio
async def test_register_opens_session(app: PhrasecardsApp) -> None:
    """Signing up opens a study session for the new user."""
    result = app.register(fake.email(), "secret123")

    assert result.ok
    assert app.context.user_id == result.user.id
    assert app.controller.state == SessionState.IDLE
    assert app.cache.load_user().id == result.user.id


@pytest.mark.asyncio
async def test_study_progress_is_persisted(app: PhrasecardsApp) -> None:
    """Answers reach the store and survive signing out and back in."""
    email = fake.email()
    user = app.register(email, "secret123").user

    app.controller.select_language_and_level(SWEDISH, A1)
    assert not app.controller.submit_answer("Hallo").is_correct
    app.controller.advance()
    assert app.controller.submit_answer("tack").is_correct
    assert app.sync_pending

    await app.sign_out()

    assert not app.sync_pending
    assert app.sync_error is None
    assert app.controller is None
    assert app.cache.load_user() is None

    stored = app.store.read_user_record(user.id).record.settings.progress[SWEDISH]
    assert stored.phrases_studied == 2
    assert [entry.original for entry in stored.failed_phrases] == ["Hej"]
    outcome = app.store.read_question_outcome(user.id, SWEDISH, "Hej")
    assert outcome.data["result"] == "failed"

    app.login(email, "secret123")
    progress = app.tracker.language_progress(SWEDISH)
    assert progress.phrases_studied == 2
    assert progress.level_progress[A1].correct == 1


@pytest.mark.asyncio
async def test_selected_level_is_saved(app: PhrasecardsApp) -> None:
    """Choosing another level updates the stored settings and the cache."""
    user = app.register(fake.email(), "secret123").user

    app.controller.select_language_and_level(Language.GERMAN, ProficiencyLevel.B1)

    stored = app.store.read_user_record(user.id).record.settings
    assert stored.selected_level == ProficiencyLevel.B1
    assert app.cache.load_user().settings.selected_level == ProficiencyLevel.B1


@pytest.mark.asyncio
async def test_failed_phrase_review_flow(app: PhrasecardsApp) -> None:
    """Failed phrases can be reviewed and cleared."""
    app.register(fake.email(), "secret123")
    app.controller.select_language_and_level(SWEDISH, A1)
    app.controller.submit_answer("wrong")

    app.controller.enter_failed_phrase_review(SWEDISH)
    assert app.controller.current_phrase().original == "Hej"
    app.controller.submit_answer("Hej")
    app.controller.advance()
    app.controller.back_out()

    await app.outbox.flush()
    stored = app.store.read_user_record(app.context.user_id).record.settings.progress[SWEDISH]
    assert stored.failed_phrases == ()
    assert app.controller.state == SessionState.IDLE


@pytest.mark.asyncio
async def test_federated_sign_in(tables, cache_path: Path) -> None:
    """Federated sign-in creates the user document on first use."""
    federated = FederatedIdentity(subject=fake.uuid4(), email=fake.email())
    app = PhrasecardsApp(cache=LocalCache(cache_path), federated_provider=lambda: federated)
    await app.start()

    result = app.sign_in_with_federated_provider()

    assert result.ok
    assert app.store.read_user_record(result.user.id).ok
    assert app.controller is not None
    await app.stop()


@pytest.mark.asyncio
async def test_cached_progress_used_when_store_unavailable(tables, cache_path: Path) -> None:
    """A returning user gets cached progress when the store has no record."""
    email = fake.email()
    first = PhrasecardsApp(cache=LocalCache(cache_path))
    await first.start()
    user = first.register(email, "secret123").user
    first.controller.select_language_and_level(SWEDISH, A1)
    first.controller.submit_answer("hej")
    # Stopping without signing out keeps the cached user
    await first.stop()

    second = PhrasecardsApp(cache=LocalCache(cache_path))
    await second.start()
    assert second.cached_record.id == user.id
    second.db.query(QuestionOutcome).filter(QuestionOutcome.user_id == user.id).delete()
    second.db.query(UserRecordRow).filter(UserRecordRow.user_id == user.id).delete()
    second.db.commit()

    second.login(email, "secret123")

    assert second.tracker.language_progress(SWEDISH).phrases_studied == 1
    assert isinstance(second.sync_error, StoreError)
    await second.stop()


@pytest.mark.asyncio
async def test_reset_password(app: PhrasecardsApp) -> None:
    """Password resets go through the identity service."""
    email = fake.email()
    app.register(email, "secret123")
    await app.sign_out()

    assert app.reset_password(email).ok
    assert not app.reset_password(fake.email()).ok


@pytest.mark.asyncio
async def test_failed_read_does_not_overwrite_stored_progress(app: PhrasecardsApp, monkeypatch) -> None:
    """A transient read error on sign-in leaves the stored document untouched."""
    email = fake.email()
    user = app.register(email, "secret123").user
    app.controller.select_language_and_level(SWEDISH, A1)
    app.controller.submit_answer("wrong")
    await app.sign_out()

    read_user_record = app.store.read_user_record
    calls = []

    def flaky_read(user_id: str) -> StoreResult:
        calls.append(user_id)
        if len(calls) == 1:
            return StoreResult(error=StoreError("timeout"))
        return read_user_record(user_id)

    monkeypatch.setattr(app.store, "read_user_record", flaky_read)

    assert app.login(email, "secret123").ok
    assert app.detached
    assert isinstance(app.sync_error, StoreError)
    assert app.tracker.language_progress(SWEDISH).phrases_studied == 0

    # Answers in a detached session stay in the cache
    app.controller.select_language_and_level(SWEDISH, A1)
    app.controller.submit_answer("hej")
    await app.outbox.flush()

    stored = read_user_record(user.id).record.settings.progress[SWEDISH]
    assert stored.phrases_studied == 1
    assert [entry.original for entry in stored.failed_phrases] == ["Hej"]
    assert app.cache.load_user().settings.progress[SWEDISH].phrases_studied == 1

    await app.sign_out()
    assert not app.detached
    assert app.login(email, "secret123").ok
    assert app.tracker.language_progress(SWEDISH).phrases_studied == 1

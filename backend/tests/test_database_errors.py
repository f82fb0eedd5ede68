from __future__ import annotations

import pytest
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError

from app.core.database import LOCK_NOT_AVAILABLE, is_lock_failure, translate_db_error
from app.core.errors import Conflict, Unavailable
from app.models import StaffRole, Story, StoryStage
from app.repositories.story_repository import fetch_locked, story_repository
from app.services.state_transition_service import state_transition_service

LOCK_SQL = "SELECT stories.id FROM stories WHERE stories.id = $1 FOR UPDATE NOWAIT"


class _DriverError(Exception):
    def __init__(self, message: str, sqlstate: str | None = None) -> None:
        super().__init__(message)
        self.sqlstate = sqlstate


class _FailingSession:
    def __init__(self, exc: Exception) -> None:
        self.exc = exc
        self.statements = []

    async def execute(self, stmt, *args, **kwargs):
        self.statements.append(stmt)
        raise self.exc


def _locked() -> DBAPIError:
    return DBAPIError(LOCK_SQL, {}, _DriverError("could not obtain lock on row", sqlstate=LOCK_NOT_AVAILABLE))


def test_lock_not_available_becomes_conflict() -> None:
    exc = _locked()
    assert is_lock_failure(exc)

    translated = translate_db_error(exc, entity="story:4")

    assert isinstance(translated, Conflict)
    assert translated.details == {"entity": "story:4"}


def test_lock_message_without_sqlstate_is_still_a_lock_failure() -> None:
    exc = OperationalError(LOCK_SQL, {}, _DriverError("ERROR: could not obtain lock on row in relation \"stories\""))
    assert isinstance(translate_db_error(exc), Conflict)


@pytest.mark.parametrize("error_type", [OperationalError, InterfaceError])
def test_outages_become_unavailable(error_type) -> None:
    exc = error_type("SELECT 1", {}, _DriverError("connection refused"))

    translated = translate_db_error(exc, entity="story:4")

    assert isinstance(translated, Unavailable)
    assert translated.status_code == 503
    assert translated.details == {"entity": "story:4", "error": error_type.__name__}


def test_invalidated_connection_becomes_unavailable() -> None:
    exc = DBAPIError("SELECT 1", {}, _DriverError("server closed the connection"), connection_invalidated=True)
    assert isinstance(translate_db_error(exc), Unavailable)


def test_integrity_errors_pass_through_unchanged() -> None:
    exc = IntegrityError("INSERT INTO translations", {}, _DriverError("duplicate key", sqlstate="23505"))
    assert translate_db_error(exc) is exc


@pytest.mark.asyncio
async def test_fetch_locked_raises_workflow_errors() -> None:
    stmt = select(Story).where(Story.id == 4)

    with pytest.raises(Conflict) as exc_info:
        await fetch_locked(_FailingSession(_locked()), stmt, entity="story:4", nowait=True)
    assert isinstance(exc_info.value.__cause__, DBAPIError)

    with pytest.raises(Unavailable):
        await fetch_locked(
            _FailingSession(OperationalError(LOCK_SQL, {}, _DriverError("timeout"))), stmt, entity="story:4"
        )

    integrity = IntegrityError(LOCK_SQL, {}, _DriverError("boom", sqlstate="23505"))
    with pytest.raises(IntegrityError):
        await fetch_locked(_FailingSession(integrity), stmt, entity="story:4")


@pytest.mark.asyncio
async def test_outage_during_transition_surfaces_as_unavailable(db, make_user, make_story, reload, monkeypatch) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    reviewer = await make_user(StaffRole.JOURNALIST)
    story = await make_story(author)
    story_id, reviewer_id = story.id, reviewer.id

    async def outage(db, story_id, **kwargs):
        raise OperationalError(LOCK_SQL, {}, _DriverError("connection reset by peer"))

    monkeypatch.setattr(story_repository, "lock_story", outage)

    with pytest.raises(Unavailable) as exc_info:
        await state_transition_service.transition_story(
            db=db, story_id=story_id, actor=author, target=StoryStage.NEEDS_JOURNALIST_REVIEW, assignee_id=reviewer_id
        )

    assert exc_info.value.details["entity"] == f"story:{story_id}"
    monkeypatch.undo()
    await reload(story)
    assert story.stage == StoryStage.DRAFT
    assert story.assigned_reviewer_id is None


@pytest.mark.asyncio
async def test_locked_row_during_transition_is_a_conflict(db, make_user, make_story, reload, monkeypatch) -> None:
    author = await make_user(StaffRole.JOURNALIST)
    reviewer = await make_user(StaffRole.JOURNALIST)
    story = await make_story(author)
    story_id, reviewer_id = story.id, reviewer.id
    held = _FailingSession(_locked())

    async def lock_held_elsewhere(db, story_id, **kwargs):
        return await fetch_locked(held, select(Story).where(Story.id == story_id), entity=f"story:{story_id}")

    monkeypatch.setattr(story_repository, "lock_story", lock_held_elsewhere)

    with pytest.raises(Conflict):
        await state_transition_service.transition_story(
            db=db, story_id=story_id, actor=author, target=StoryStage.NEEDS_JOURNALIST_REVIEW, assignee_id=reviewer_id
        )

    assert len(held.statements) == 1
    monkeypatch.undo()
    await reload(story)
    assert story.stage == StoryStage.DRAFT

from __future__ import annotations

import os

os.environ.setdefault("NEWSROOM_APP_SECRET_KEY", "test-secret-key-for-newsroom-workflow-0001")
os.environ.setdefault("NEWSROOM_POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("NEWSROOM_DATABASE_URL_OVERRIDE", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("NEWSROOM_APP_DEBUG", "false")
os.environ.setdefault("NEWSROOM_REDIS_ENABLED", "false")
os.environ["NEWSROOM_EVENTS_WEBHOOK_URL"] = ""

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.models import Language, StaffRole, Story, StoryStage, User, UserType


@pytest_asyncio.fixture
async def engine():
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite defers BEGIN on its own, which breaks SAVEPOINT handling.
    @event.listens_for(test_engine.sync_engine, "connect")
    def _disable_driver_begin(dbapi_connection, _record):
        dbapi_connection.isolation_level = None

    @event.listens_for(test_engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest_asyncio.fixture
async def db(engine) -> AsyncSession:
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    async def _make(
        role: StaffRole | None = StaffRole.JOURNALIST,
        *,
        username: str | None = None,
        language: Language | None = None,
        user_type: UserType = UserType.STAFF,
        is_active: bool = True,
    ) -> User:
        counter["n"] += 1
        name = username or f"{(role.value if role else user_type.value).lower()}_{counter['n']}"
        user = User(
            username=name,
            full_name=name.replace("_", " ").title(),
            user_type=user_type,
            staff_role=role,
            translation_language=language,
            is_active=is_active,
        )
        db.add(user)
        await db.commit()
        await db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_story(db):
    async def _make(
        author: User,
        *,
        stage: StoryStage = StoryStage.DRAFT,
        reviewer: User | None = None,
        approver: User | None = None,
        language: Language = Language.ENGLISH,
        title: str = "Council approves new budget",
        category_id: int | None = 3,
    ) -> Story:
        story = Story(
            title=title,
            body="",
            stage=stage,
            language=language,
            category_id=category_id,
            author_id=author.id,
            assigned_reviewer_id=reviewer.id if reviewer else None,
            assigned_approver_id=approver.id if approver else None,
            is_translation=False,
            follow_up_completed=False,
        )
        db.add(story)
        await db.commit()
        return story

    return _make


@pytest.fixture
def reload(db):
    """Re-read rows after a failed mutation; the rollback leaves them expired."""

    async def _reload(*rows):
        for row in rows:
            await db.refresh(row)
        return rows[0] if len(rows) == 1 else rows

    return _reload

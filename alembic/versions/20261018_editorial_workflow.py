"""editorial workflow tables

Revision ID: 20261018_editorial_workflow
Revises:
Create Date: 2026-10-18
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_editorial_workflow"
down_revision = None
branch_labels = None
depends_on = None


STAFF_ROLE = postgresql.ENUM(
    "INTERN", "JOURNALIST", "SUB_EDITOR", "EDITOR", "ADMIN", "SUPERADMIN",
    name="staff_role", create_type=False,
)
USER_TYPE = postgresql.ENUM("STAFF", "RADIO", name="user_type", create_type=False)
STORY_LANGUAGE = postgresql.ENUM("ENGLISH", "AFRIKAANS", "XHOSA", name="story_language", create_type=False)
STORY_STAGE = postgresql.ENUM(
    "DRAFT",
    "NEEDS_JOURNALIST_REVIEW",
    "NEEDS_SUB_EDITOR_APPROVAL",
    "APPROVED",
    "READY_TO_PUBLISH",
    "PUBLISHED",
    "NEEDS_REVISION",
    "ARCHIVED",
    name="story_stage",
    create_type=False,
)
TRANSLATION_STATUS = postgresql.ENUM(
    "PENDING", "IN_PROGRESS", "NEEDS_REVIEW", "APPROVED", "REJECTED", "PUBLISHED",
    name="translation_status", create_type=False,
)
TASK_TYPE = postgresql.ENUM(
    "STORY_REVIEW",
    "STORY_APPROVAL",
    "STORY_REVISION_TO_AUTHOR",
    "STORY_TRANSLATE",
    "STORY_PUBLISH",
    "STORY_FOLLOW_UP",
    "BULLETIN_CREATE",
    name="task_type",
    create_type=False,
)
TASK_PRIORITY = postgresql.ENUM("LOW", "MEDIUM", "HIGH", "URGENT", name="task_priority", create_type=False)
TASK_STATUS = postgresql.ENUM("PENDING", "IN_PROGRESS", "DONE", name="task_status", create_type=False)

ENUMS = (
    STAFF_ROLE,
    USER_TYPE,
    STORY_LANGUAGE,
    STORY_STAGE,
    TRANSLATION_STATUS,
    TASK_TYPE,
    TASK_PRIORITY,
    TASK_STATUS,
)


def upgrade():
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("user_type", USER_TYPE, nullable=False, server_default="STAFF"),
        sa.Column("staff_role", STAFF_ROLE, nullable=True),
        sa.Column("translation_language", STORY_LANGUAGE, nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_staff_role", "users", ["staff_role"])
    op.create_index("ix_users_translation_language", "users", ["translation_language"])

    op.create_table(
        "stories",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("body", sa.Text(), nullable=False, server_default=""),
        sa.Column("stage", STORY_STAGE, nullable=False, server_default="DRAFT"),
        sa.Column("language", STORY_LANGUAGE, nullable=False, server_default="ENGLISH"),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("author_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_reviewer_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("assigned_approver_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("is_translation", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("original_story_id", sa.Integer(), sa.ForeignKey("stories.id", ondelete="SET NULL"), nullable=True),
        sa.Column("published_at", sa.DateTime(), nullable=True),
        sa.Column("published_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("follow_up_date", sa.DateTime(), nullable=True),
        sa.Column("follow_up_note", sa.Text(), nullable=True),
        sa.Column("follow_up_completed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("follow_up_completed_at", sa.DateTime(), nullable=True),
        sa.Column(
            "follow_up_completed_by_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "assigned_reviewer_id IS NULL OR stage = 'NEEDS_JOURNALIST_REVIEW'",
            name="ck_stories_reviewer_only_in_review",
        ),
        sa.CheckConstraint(
            "assigned_approver_id IS NULL OR stage = 'NEEDS_SUB_EDITOR_APPROVAL'",
            name="ck_stories_approver_only_in_approval",
        ),
        sa.CheckConstraint(
            "stage <> 'NEEDS_JOURNALIST_REVIEW' OR assigned_reviewer_id IS NOT NULL",
            name="ck_stories_review_owned",
        ),
        sa.CheckConstraint(
            "stage <> 'NEEDS_SUB_EDITOR_APPROVAL' OR assigned_approver_id IS NOT NULL",
            name="ck_stories_approval_owned",
        ),
    )
    for column in (
        "stage",
        "language",
        "category_id",
        "author_id",
        "assigned_reviewer_id",
        "assigned_approver_id",
        "is_translation",
        "original_story_id",
        "follow_up_date",
        "created_at",
        "updated_at",
    ):
        op.create_index(f"ix_stories_{column}", "stories", [column])
    op.create_index("ix_stories_stage_updated", "stories", ["stage", "updated_at"])

    op.create_table(
        "translations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "original_story_id",
            sa.Integer(),
            sa.ForeignKey("stories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "translated_story_id",
            sa.Integer(),
            sa.ForeignKey("stories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("assigned_to_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("target_language", STORY_LANGUAGE, nullable=False),
        sa.Column("status", TRANSLATION_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("translator_notes", sa.Text(), nullable=True),
        sa.Column("reviewer_notes", sa.Text(), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        sa.Column("rejected_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=True),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    for column in (
        "original_story_id",
        "translated_story_id",
        "assigned_to_id",
        "target_language",
        "status",
        "created_at",
    ):
        op.create_index(f"ix_translations_{column}", "translations", [column])
    op.create_index(
        "uq_translations_active_story_language",
        "translations",
        ["original_story_id", "target_language"],
        unique=True,
        postgresql_where=sa.text("status <> 'REJECTED'"),
    )

    op.create_table(
        "tasks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("type", TASK_TYPE, nullable=False),
        sa.Column("priority", TASK_PRIORITY, nullable=False, server_default="MEDIUM"),
        sa.Column("status", TASK_STATUS, nullable=False, server_default="PENDING"),
        sa.Column("title", sa.String(length=512), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("content_type", sa.String(length=32), nullable=True),
        sa.Column("content_id", sa.Integer(), nullable=True),
        sa.Column("assigned_to_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("due_date", sa.DateTime(), nullable=True),
        sa.Column("scheduled_for", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_tasks_type", "tasks", ["type"])
    op.create_index("ix_tasks_status", "tasks", ["status"])
    op.create_index("ix_tasks_assigned_to_id", "tasks", ["assigned_to_id"])
    op.create_index("ix_tasks_due_date", "tasks", ["due_date"])
    op.create_index("ix_tasks_content", "tasks", ["content_type", "content_id"])
    op.create_index("ix_tasks_assignee_status", "tasks", ["assigned_to_id", "status"])

    op.create_table(
        "audit_log_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("target_type", sa.String(length=40), nullable=False),
        sa.Column("target_id", sa.String(length=64), nullable=True),
        sa.Column("from_state", sa.String(length=64), nullable=True),
        sa.Column("to_state", sa.String(length=64), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("correlation_id", sa.String(length=64), nullable=True),
        sa.Column("request_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=True),
    )
    for column in ("user_id", "action", "target_type", "target_id", "correlation_id", "request_id", "created_at"):
        op.create_index(f"ix_audit_log_entries_{column}", "audit_log_entries", [column])
    op.create_index("ix_audit_target_created", "audit_log_entries", ["target_type", "target_id", "created_at"])


def downgrade():
    op.drop_table("audit_log_entries")
    op.drop_table("tasks")
    op.drop_index("uq_translations_active_story_language", table_name="translations")
    op.drop_table("translations")
    op.drop_table("stories")
    op.drop_table("users")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)

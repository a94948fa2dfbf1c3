"""init schema: users, concerns, timeline, chat, counters

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19 12:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

ROLES = ("student", "mentor", "admin", "superadmin")
CAMPUSES = ("Kochi", "Calicut", "Trivandrum", "Other")
STATUSES = ("Submitted", "In Review", "Assigned", "In Progress", "Resolved", "Closed", "Reopened")
CATEGORIES = (
    "Technical", "Personal", "Financial", "Behavioral", "Misconduct",
    "Infrastructure", "Course Content", "Mentor Related", "Other",
)
SEVERITIES = ("Low", "Medium", "High", "Critical")


def _enum(values, name):
    # у Postgres створюємо тип один раз (campus_enum/status використовуються у кількох таблицях)
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        e = postgresql.ENUM(*values, name=name, create_type=False)
        e.create(bind, checkfirst=True)
        return e
    return sa.Enum(*values, name=name)


def upgrade() -> None:
    role_enum = _enum(ROLES, "role_enum")
    campus_enum = _enum(CAMPUSES, "campus_enum")
    status_enum = _enum(STATUSES, "concern_status_enum")
    category_enum = _enum(CATEGORIES, "concern_category_enum")
    severity_enum = _enum(SEVERITIES, "concern_severity_enum")
    json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

    # ---------- users ----------
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("role", role_enum, nullable=False, server_default="student"),
        sa.Column("campus", campus_enum, nullable=True),
        sa.Column("batch", sa.String(64), nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("profile_image", sa.String(512), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # ---------- concerns ----------
    op.create_table(
        "concerns",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("ticket_id", sa.String(32), nullable=False),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("assigned_to_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", category_enum, nullable=False),
        sa.Column("severity", severity_enum, nullable=False, server_default="Medium"),
        sa.Column("status", status_enum, nullable=False, server_default="Submitted"),
        sa.Column("campus", campus_enum, nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("attachments", json_type, nullable=False),
        sa.Column("rating", sa.SmallInteger(), nullable=True),
        sa.Column("feedback", sa.Text(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_concerns_ticket_id", "concerns", ["ticket_id"], unique=True)
    op.create_index("ix_concerns_student_id", "concerns", ["student_id"])
    op.create_index("ix_concerns_assigned_to_id", "concerns", ["assigned_to_id"])
    op.create_index("ix_concerns_status_severity", "concerns", ["status", "severity"])
    op.create_index("ix_concerns_created_at", "concerns", ["created_at"])

    # ---------- timeline ----------
    op.create_table(
        "concern_timeline",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("concern_id", sa.Integer(), sa.ForeignKey("concerns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", status_enum, nullable=False),
        sa.Column("updated_by_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
        sa.Column("comment", sa.Text(), nullable=False, server_default=""),
        sa.Column("timestamp", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_concern_timeline_concern_id", "concern_timeline", ["concern_id"])

    # ---------- chat ----------
    op.create_table(
        "chat_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("concern_id", sa.Integer(), sa.ForeignKey("concerns.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("attachments", json_type, nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_chat_messages_sender_id", "chat_messages", ["sender_id"])
    op.create_index("ix_chat_messages_concern_created", "chat_messages", ["concern_id", "created_at"])

    # ---------- counters ----------
    counters = op.create_table(
        "counters",
        sa.Column("name", sa.String(64), primary_key=True),
        sa.Column("value", sa.Integer(), nullable=False, server_default="0"),
    )
    op.bulk_insert(counters, [{"name": "concern", "value": 0}])


def downgrade() -> None:
    op.drop_table("counters")
    op.drop_index("ix_chat_messages_concern_created", table_name="chat_messages")
    op.drop_index("ix_chat_messages_sender_id", table_name="chat_messages")
    op.drop_table("chat_messages")
    op.drop_index("ix_concern_timeline_concern_id", table_name="concern_timeline")
    op.drop_table("concern_timeline")
    for ix in (
        "ix_concerns_created_at",
        "ix_concerns_status_severity",
        "ix_concerns_assigned_to_id",
        "ix_concerns_student_id",
        "ix_concerns_ticket_id",
    ):
        op.drop_index(ix, table_name="concerns")
    op.drop_table("concerns")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    for name in (
        "concern_severity_enum",
        "concern_category_enum",
        "concern_status_enum",
        "campus_enum",
        "role_enum",
    ):
        sa.Enum(name=name).drop(op.get_bind(), checkfirst=True)

"""Create achievement tables

Revision ID: a1c4e7f20b13
Revises:
Create Date: 2026-10-19

Profiles (lecturers, students), achievement references, the reconciliation
queue for failed cross-store repairs, and the audit log.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a1c4e7f20b13"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "lecturers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("lecturer_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=256), nullable=False),
        sa.Column("department", sa.String(length=128), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_lecturers_user_id", "lecturers", ["user_id"], unique=True)

    op.create_table(
        "students",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=128), nullable=False),
        sa.Column("student_number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("full_name", sa.String(length=256), nullable=False),
        sa.Column("program_study", sa.String(length=128), nullable=True),
        sa.Column("academic_year", sa.String(length=16), nullable=True),
        sa.Column(
            "advisor_id",
            sa.String(length=36),
            sa.ForeignKey("lecturers.id"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_students_user_id", "students", ["user_id"], unique=True)
    op.create_index("ix_students_advisor_id", "students", ["advisor_id"])

    op.create_table(
        "achievement_references",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(length=36),
            sa.ForeignKey("students.id"),
            nullable=False,
        ),
        sa.Column("document_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column(
            "status",
            sa.Enum(
                "draft", "submitted", "verified", "rejected", "deleted",
                name="achievement_status",
                create_constraint=True,
            ),
            nullable=False,
            server_default="draft",
        ),
        # Review outcome
        sa.Column("rejection_note", sa.Text, nullable=True),
        sa.Column("verified_by", sa.String(length=36), nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_achievement_references_student_id", "achievement_references", ["student_id"]
    )
    op.create_index(
        "ix_achievement_references_status", "achievement_references", ["status"]
    )
    op.create_index(
        "ix_achievement_references_student_status",
        "achievement_references",
        ["student_id", "status"],
    )
    op.create_index(
        "ix_achievement_references_created_at", "achievement_references", ["created_at"]
    )

    op.create_table(
        "achievement_reconciliation",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "action",
            sa.Enum(
                "delete_document", "delete_file", "apply_points",
                name="reconciliation_action",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("achievement_id", sa.String(length=36), nullable=True),
        sa.Column("document_id", sa.String(length=64), nullable=True),
        sa.Column("payload", sa.JSON, nullable=False),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_achievement_reconciliation_action", "achievement_reconciliation", ["action"]
    )
    op.create_index(
        "ix_achievement_reconciliation_achievement_id",
        "achievement_reconciliation",
        ["achievement_id"],
    )
    op.create_index(
        "ix_achievement_reconciliation_resolved_at",
        "achievement_reconciliation",
        ["resolved_at"],
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "ts",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        # Actor columns
        sa.Column(
            "actor_kind",
            sa.Enum(
                "student", "advisor", "admin", "system",
                name="audit_actor_kind",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column(
            "action",
            sa.Enum(
                "created", "updated", "status_changed", "attachment_added",
                name="audit_action",
                create_constraint=True,
            ),
            nullable=False,
        ),
        # Entity columns
        sa.Column("entity_kind", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("before", sa.JSON, nullable=True),
        sa.Column("after", sa.JSON, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_audit_log_ts", "audit_log", ["ts"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_entity_kind", "audit_log", ["entity_kind"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_actor", "audit_log", ["actor_kind", "actor_id"])
    op.create_index(
        "ix_audit_log_entity_ts", "audit_log", ["entity_kind", "entity_id", "ts"]
    )


def downgrade() -> None:
    op.drop_table("audit_log")
    op.drop_table("achievement_reconciliation")
    op.drop_table("achievement_references")
    op.drop_table("students")
    op.drop_table("lecturers")

    # Drop enum types (PostgreSQL)
    for enum_name in (
        "audit_action",
        "audit_actor_kind",
        "reconciliation_action",
        "achievement_status",
    ):
        sa.Enum(name=enum_name).drop(op.get_bind(), checkfirst=True)

"""create irregular schedule tables

Revision ID: 20261019_0002
Revises: 20261019_0001
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0002"
down_revision = "20261019_0001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "irregular_course_requirements",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("course_code", sa.String(length=50), nullable=False),
        sa.Column("original_level", sa.Integer(), nullable=False),
        sa.Column("reason", sa.String(length=200), nullable=False, server_default="failed"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("student_id", "course_code", name="uq_irregular_requirement_student_course"),
    )
    op.create_index(
        "ix_irregular_course_requirements_student_id",
        "irregular_course_requirements",
        ["student_id"],
    )

    op.create_table(
        "irregular_schedules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("enrolled_level", sa.Integer(), nullable=False),
        sa.Column("sections", sa.JSON(), nullable=False),
        sa.Column("unplaced", sa.JSON(), nullable=False),
        sa.Column("total_courses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_irregular_schedules_student_id", "irregular_schedules", ["student_id"], unique=True)


def downgrade() -> None:
    op.drop_index("ix_irregular_schedules_student_id", table_name="irregular_schedules")
    op.drop_table("irregular_schedules")
    op.drop_index("ix_irregular_course_requirements_student_id", table_name="irregular_course_requirements")
    op.drop_table("irregular_course_requirements")

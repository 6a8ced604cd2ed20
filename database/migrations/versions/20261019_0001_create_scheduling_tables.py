"""create scheduling tables

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    course_type = sa.Enum("compulsory", "elective", name="course_type")
    room_affinity = sa.Enum("lecture", "lab", name="room_affinity")
    room_type = sa.Enum("lecture", "lab", name="room_type")
    rule_category = sa.Enum(
        "general",
        "break_time",
        "no_friday",
        "lab_continuity",
        "day_off_balance",
        "room",
        "conflict_prevention",
        name="rule_category",
    )

    op.create_table(
        "courses",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=50), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("type", course_type, nullable=False),
        sa.Column("room_affinity", room_affinity, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_courses_code", "courses", ["code"], unique=True)
    op.create_index("ix_courses_level", "courses", ["level"])

    op.create_table(
        "students",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_number", sa.String(length=50), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("group_name", sa.String(length=10), nullable=True),
        sa.Column("is_irregular", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_students_student_number", "students", ["student_number"], unique=True)
    op.create_index("ix_students_level", "students", ["level"])

    op.create_table(
        "rooms",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("building", sa.String(length=200), nullable=False, server_default="Main"),
        sa.Column("capacity", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("type", room_type, nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_rooms_name", "rooms", ["name"], unique=True)

    op.create_table(
        "scheduling_rules",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("rule_text", sa.Text(), nullable=False),
        sa.Column("category", rule_category, nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("applies_to_levels", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "elective_choices",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("student_id", sa.String(length=36), nullable=False),
        sa.Column("course_code", sa.String(length=50), nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("preference_rank", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("student_id", "course_code", name="uq_elective_choice_student_course"),
    )
    op.create_index("ix_elective_choices_student_id", "elective_choices", ["student_id"])
    op.create_index("ix_elective_choices_course_code", "elective_choices", ["course_code"])
    op.create_index("ix_elective_choices_level", "elective_choices", ["level"])

    op.create_table(
        "level_group_settings",
        sa.Column("level", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("students_per_group", sa.Integer(), nullable=False, server_default="25"),
        sa.Column("total_students", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("num_groups", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("group_names", sa.JSON(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "schedule_versions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("groups", sa.JSON(), nullable=False),
        sa.Column("total_sections", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conflicts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("efficiency", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        sa.Column("conflict_snapshot", sa.JSON(), nullable=False),
        sa.Column("placement_gaps", sa.JSON(), nullable=False),
        sa.Column("created_by_id", sa.String(length=36), nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_schedule_versions_level", "schedule_versions", ["level"])
    op.create_index("ix_schedule_versions_generated_at", "schedule_versions", ["generated_at"])

    op.create_table(
        "schedule_audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("schedule_version_id", sa.String(length=36), nullable=True),
        sa.Column("action_type", sa.String(length=50), nullable=False),
        sa.Column("user_id", sa.String(length=36), nullable=True),
        sa.Column("level", sa.Integer(), nullable=False),
        sa.Column("group_name", sa.String(length=50), nullable=True),
        sa.Column("prompt_used", sa.Text(), nullable=True),
        sa.Column("changes_summary", sa.JSON(), nullable=False),
        sa.Column("conflicts_before", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("conflicts_after", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("execution_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_schedule_audit_logs_schedule_version_id", "schedule_audit_logs", ["schedule_version_id"])


def downgrade() -> None:
    op.drop_index("ix_schedule_audit_logs_schedule_version_id", table_name="schedule_audit_logs")
    op.drop_table("schedule_audit_logs")
    op.drop_index("ix_schedule_versions_generated_at", table_name="schedule_versions")
    op.drop_index("ix_schedule_versions_level", table_name="schedule_versions")
    op.drop_table("schedule_versions")
    op.drop_table("level_group_settings")
    op.drop_index("ix_elective_choices_level", table_name="elective_choices")
    op.drop_index("ix_elective_choices_course_code", table_name="elective_choices")
    op.drop_index("ix_elective_choices_student_id", table_name="elective_choices")
    op.drop_table("elective_choices")
    op.drop_table("scheduling_rules")
    op.drop_index("ix_rooms_name", table_name="rooms")
    op.drop_table("rooms")
    op.drop_index("ix_students_level", table_name="students")
    op.drop_index("ix_students_student_number", table_name="students")
    op.drop_table("students")
    op.drop_index("ix_courses_level", table_name="courses")
    op.drop_index("ix_courses_code", table_name="courses")
    op.drop_table("courses")

    bind = op.get_bind()
    for enum_name in ("rule_category", "room_type", "room_affinity", "course_type"):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)

from __future__ import annotations

import logging

from sqlalchemy import inspect
from sqlalchemy.engine import Engine

from timetabler.db.base import Base

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS: dict[str, set[str]] = {
    "courses": {"id", "code", "level", "type", "room_affinity"},
    "students": {"id", "student_number", "level", "group_name", "is_irregular"},
    "rooms": {"id", "name", "capacity", "type", "is_active"},
    "schedule_versions": {
        "id",
        "level",
        "groups",
        "total_sections",
        "conflicts",
        "efficiency",
        "generated_at",
    },
    "irregular_schedules": {"id", "student_id", "enrolled_level", "sections", "unplaced"},
}


def missing_schema(engine: Engine) -> tuple[list[str], dict[str, list[str]]]:
    """Return (missing tables, missing columns per table) against REQUIRED_COLUMNS."""
    missing_tables: list[str] = []
    missing_columns: dict[str, list[str]] = {}
    with engine.connect() as connection:
        inspector = inspect(connection)
        table_names = set(inspector.get_table_names())
        for table_name, columns in REQUIRED_COLUMNS.items():
            if table_name not in table_names:
                missing_tables.append(table_name)
                continue
            existing = {item["name"] for item in inspector.get_columns(table_name)}
            missing = sorted(columns - existing)
            if missing:
                missing_columns[table_name] = missing
    return missing_tables, missing_columns


def ensure_runtime_schema(engine: Engine, *, auto_create: bool) -> None:
    import timetabler.models  # noqa: F401

    if auto_create:
        Base.metadata.create_all(bind=engine)
        return

    missing_tables, missing_columns = missing_schema(engine)
    if missing_tables or missing_columns:
        logger.warning(
            "Database schema is behind the models; run `alembic upgrade head` | missing_tables=%s missing_columns=%s",
            missing_tables,
            missing_columns,
        )

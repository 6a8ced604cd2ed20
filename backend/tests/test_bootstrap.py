import logging

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from timetabler.db import bootstrap


def test_missing_schema_on_empty_database():
    engine = create_engine("sqlite+pysqlite://")
    missing_tables, missing_columns = bootstrap.missing_schema(engine)
    assert set(missing_tables) == set(bootstrap.REQUIRED_COLUMNS)
    assert missing_columns == {}


def test_auto_create_builds_every_table():
    engine = create_engine("sqlite+pysqlite://", poolclass=StaticPool)
    bootstrap.ensure_runtime_schema(engine, auto_create=True)
    assert bootstrap.missing_schema(engine) == ([], {})


def test_schema_warning_when_tables_missing(caplog):
    engine = create_engine("sqlite+pysqlite://")
    with caplog.at_level(logging.WARNING, logger="timetabler.db.bootstrap"):
        bootstrap.ensure_runtime_schema(engine, auto_create=False)
    assert "alembic upgrade head" in caplog.text

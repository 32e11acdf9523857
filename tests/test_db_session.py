# File: tests/test_db_session.py

import logging

from sqlalchemy import text

from sparkle_api.core.config import Settings
from sparkle_api.core.logging_config import apply_database_log_level
from sparkle_api.db.session import build_engine


def run_query(engine):
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def test_slow_queries_are_logged(caplog):
    engine = build_engine("sqlite://", slow_query_ms=0)
    with caplog.at_level(logging.WARNING, logger="sparkle_api.db.session"):
        run_query(engine)

    slow = [r for r in caplog.records if r.name == "sparkle_api.db.session"]
    assert len(slow) == 1
    assert "Slow query" in slow[0].getMessage()
    assert "SELECT 1" in slow[0].getMessage()
    assert slow[0].event == "db.slow_query"


def test_fast_queries_are_not_logged(caplog):
    engine = build_engine("sqlite://", slow_query_ms=60_000)
    with caplog.at_level(logging.WARNING, logger="sparkle_api.db.session"):
        run_query(engine)

    assert not [r for r in caplog.records if r.name == "sparkle_api.db.session"]


def test_database_log_level_maps_onto_sqlalchemy_logger():
    engine_logger = logging.getLogger("sqlalchemy.engine")
    previous = engine_logger.level
    try:
        apply_database_log_level("query")
        assert engine_logger.level == logging.INFO
        apply_database_log_level("warn")
        assert engine_logger.level == logging.WARNING
        apply_database_log_level("error")
        assert engine_logger.level == logging.ERROR
    finally:
        engine_logger.setLevel(previous)


def test_database_log_level_defaults_by_environment():
    assert Settings(_env_file=None, APP_ENV="development").database_config.log_level == "query"
    assert Settings(_env_file=None, APP_ENV="production").database_config.log_level == "error"
    explicit = Settings(_env_file=None, APP_ENV="development", DATABASE_LOG_LEVEL="warn")
    assert explicit.database_config.log_level == "warn"
    assert explicit.database_config.slow_query_ms == 5000

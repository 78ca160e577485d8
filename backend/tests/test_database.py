from __future__ import annotations

import sys
from pathlib import Path

from sqlalchemy import inspect, text

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from db.database import Database, run_startup_migrations  # noqa: E402


def _legacy_database() -> Database:
    database = Database("sqlite://")
    with database.engine.begin() as conn:
        conn.execute(text(
            "CREATE TABLE daily_planning (id INTEGER PRIMARY KEY, user_id INTEGER, date DATE, planned_steps TEXT)"
        ))
        conn.execute(text(
            "CREATE TABLE event_interactions "
            "(id INTEGER PRIMARY KEY, user_id INTEGER, automation_id INTEGER, date DATE, status TEXT)"
        ))
        conn.execute(text(
            "INSERT INTO daily_planning (id, user_id, date, planned_steps) VALUES "
            "(1, 1, '2024-01-01', '[1]'), (2, 1, '2024-01-01', '[2]'), (3, 1, '2024-01-02', '[3]')"
        ))
        conn.execute(text(
            "INSERT INTO event_interactions (id, user_id, automation_id, date, status) VALUES "
            "(1, 1, 7, '2024-01-01', 'pending'), (2, 1, 7, '2024-01-01', 'completed'), "
            "(3, 1, 8, '2024-01-01', 'pending')"
        ))
    return database


def _unique_index_names(engine, table: str) -> set[str]:
    return {index["name"] for index in inspect(engine).get_indexes(table) if index["unique"]}


def test_startup_migrations_dedupe_and_backfill_unique_day_indexes():
    database = _legacy_database()

    run_startup_migrations(database.engine)

    with database.engine.connect() as conn:
        planning = conn.execute(text("SELECT id, planned_steps FROM daily_planning ORDER BY id")).all()
        interactions = conn.execute(text("SELECT id, status FROM event_interactions ORDER BY id")).all()
    assert [tuple(row) for row in planning] == [(2, "[2]"), (3, "[3]")]
    assert [tuple(row) for row in interactions] == [(2, "completed"), (3, "pending")]
    assert "idx_daily_planning_user_date" in _unique_index_names(database.engine, "daily_planning")
    assert "idx_event_interactions_unique_day" in _unique_index_names(database.engine, "event_interactions")


def test_startup_migrations_are_idempotent_on_a_fresh_schema():
    database = Database("sqlite://")
    database.create_all()

    run_startup_migrations(database.engine)

    assert "idx_daily_stats_user_date" in _unique_index_names(database.engine, "daily_stats")

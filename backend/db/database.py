from fastapi import Request
from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase, Session
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    pass


def _set_sqlite_pragma(dbapi_connection, connection_record):
    _ = connection_record
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class Database:
    """Store handle: one engine plus its session factory.

    Built once per process (or per test) and handed to the app explicitly.
    """

    def __init__(self, url: str, *, echo: bool = False) -> None:
        self.url = url
        kwargs: dict = {"echo": echo}
        if url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if url in {"sqlite://", "sqlite:///:memory:"}:
                # Every session must see the same in-memory database.
                kwargs["poolclass"] = StaticPool
        self.engine: Engine = create_engine(url, **kwargs)
        if self.engine.dialect.name == "sqlite":
            event.listen(self.engine, "connect", _set_sqlite_pragma)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)

    def create_all(self) -> None:
        # Registers every mapped class on Base.metadata before creating tables.
        import db.models  # noqa: F401

        Base.metadata.create_all(bind=self.engine)
        run_startup_migrations(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()


def get_db(request: Request):
    database: Database = request.app.state.database
    db: Session = database.SessionLocal()
    try:
        yield db
    finally:
        db.close()


# (index, table, key columns) backfilled onto tables that predate the index.
_UNIQUE_KEY_INDEXES = (
    ("idx_daily_stats_user_date", "daily_stats", "user_id, date"),
    ("idx_daily_planning_user_date", "daily_planning", "user_id, date"),
    ("idx_event_interactions_unique_day", "event_interactions", "user_id, automation_id, date"),
)


def run_startup_migrations(engine: Engine) -> None:
    """Apply lightweight schema fixes for databases created by older builds."""
    inspector = inspect(engine)

    def _table_columns(table_name: str) -> set[str]:
        try:
            return {col["name"] for col in inspector.get_columns(table_name)}
        except Exception:
            return set()

    user_settings_columns = _table_columns("user_settings")
    daily_stats_columns = _table_columns("daily_stats")
    automation_columns = _table_columns("automations")
    keyed_tables = {table for _, table, _ in _UNIQUE_KEY_INDEXES if _table_columns(table)}
    if not user_settings_columns and not daily_stats_columns and not automation_columns and not keyed_tables:
        # Tables may not exist yet on first boot.
        return

    alter_statements: list[str] = []
    if user_settings_columns:
        if "workflow" not in user_settings_columns:
            alter_statements.append("ALTER TABLE user_settings ADD COLUMN workflow TEXT DEFAULT 'daily_planning'")
        if "daily_reset_hour" not in user_settings_columns:
            alter_statements.append("ALTER TABLE user_settings ADD COLUMN daily_reset_hour INTEGER DEFAULT 0")
        if "last_reset_date" not in user_settings_columns:
            alter_statements.append("ALTER TABLE user_settings ADD COLUMN last_reset_date DATE")
        if "timezone" not in user_settings_columns:
            alter_statements.append("ALTER TABLE user_settings ADD COLUMN timezone TEXT")
    if daily_stats_columns:
        if "optimum_deviation" not in daily_stats_columns:
            alter_statements.append("ALTER TABLE daily_stats ADD COLUMN optimum_deviation INTEGER DEFAULT 0")
    if automation_columns:
        if "schedule_kind" not in automation_columns:
            alter_statements.append("ALTER TABLE automations ADD COLUMN schedule_kind TEXT")
        if "schedule_day" not in automation_columns:
            alter_statements.append("ALTER TABLE automations ADD COLUMN schedule_day INTEGER")

    with engine.begin() as conn:
        for stmt in alter_statements:
            conn.execute(text(stmt))

        if user_settings_columns:
            conn.execute(text("UPDATE user_settings SET workflow = COALESCE(workflow, 'daily_planning')"))
            conn.execute(text("UPDATE user_settings SET daily_reset_hour = COALESCE(daily_reset_hour, 0)"))
        if daily_stats_columns:
            conn.execute(text("UPDATE daily_stats SET optimum_deviation = COALESCE(optimum_deviation, 0)"))
        for index_name, table, columns in _UNIQUE_KEY_INDEXES:
            if table not in keyed_tables:
                continue
            # Keep the newest row per key before enforcing uniqueness.
            conn.execute(text(
                f"""
                DELETE FROM {table}
                WHERE id NOT IN (
                    SELECT MAX(id)
                    FROM {table}
                    GROUP BY {columns}
                )
                """
            ))
            conn.execute(text(f"CREATE UNIQUE INDEX IF NOT EXISTS {index_name} ON {table} ({columns})"))
        if automation_columns:
            # Legacy free-text cadences that name a daily rhythm become structured schedules.
            conn.execute(text(
                """
                UPDATE automations
                SET schedule_kind = 'daily'
                WHERE schedule_kind IS NULL
                  AND frequency_type = 'recurring'
                  AND (LOWER(frequency_time) LIKE '%daily%' OR frequency_time LIKE '%denně%')
                """
            ))
            conn.execute(text(
                """
                UPDATE automations
                SET schedule_kind = 'one_time'
                WHERE schedule_kind IS NULL
                  AND frequency_type = 'one-time'
                  AND scheduled_date IS NOT NULL
                """
            ))

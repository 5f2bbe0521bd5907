"""
Database migrations for the local marketplace store.

Uses SQLite ALTER TABLE ADD COLUMN for incremental schema evolution.
Each migration is idempotent: columns are only added if absent.

Called automatically from init_db() after create_all() so both fresh
installs and databases created by older app versions are handled.
"""
from sqlalchemy import text


def run_migrations(engine) -> None:
    """Apply all pending schema migrations.

    Safe to call multiple times; checks column existence before altering.
    Supports SQLite only (uses PRAGMA table_info).

    Args:
        engine: SQLAlchemy engine (SQLModel create_engine result).
    """
    with engine.connect() as conn:
        # Listing: chips, website link and map pin
        _add_column_if_missing(conn, "listing", "tags_json", "TEXT NOT NULL DEFAULT '[]'")
        _add_column_if_missing(conn, "listing", "more_info_url", "TEXT")
        _add_column_if_missing(conn, "listing", "latitude", "REAL")
        _add_column_if_missing(conn, "listing", "longitude", "REAL")

        # Listing: detail-page enrichment
        _add_column_if_missing(conn, "listing", "freehold_value", "INTEGER")
        _add_column_if_missing(conn, "listing", "reconstituted_profit", "INTEGER")
        _add_column_if_missing(conn, "listing", "reconstituted_profit_percent", "REAL")
        _add_column_if_missing(conn, "listing", "udas_count", "INTEGER")
        _add_column_if_missing(conn, "listing", "udas_price_per_uda", "INTEGER")
        _add_column_if_missing(conn, "listing", "company_type", "TEXT")

        # Lead: seller callback preference and intake details
        _add_column_if_missing(conn, "lead", "callback_window", "TEXT")
        _add_column_if_missing(conn, "lead", "income_mix", "TEXT")
        _add_column_if_missing(conn, "lead", "practice_type", "TEXT")
        _add_column_if_missing(conn, "lead", "surgeries_count", "INTEGER")
        _add_column_if_missing(conn, "lead", "tenure", "TEXT")
        _add_column_if_missing(conn, "lead", "readiness", "TEXT")

        # Outbox: per-item lease for overlapping flushes
        _add_column_if_missing(conn, "outbox", "leased_until", "DATETIME")

        conn.commit()


def _add_column_if_missing(conn, table: str, column: str, col_type: str) -> None:
    """Add a column to a table if it doesn't already exist.

    Args:
        conn: SQLAlchemy connection.
        table: Table name (lowercase, as SQLite stores it).
        column: Column name to add.
        col_type: SQLite type string, e.g. "INTEGER", "REAL", "TEXT".
    """
    result = conn.execute(text(f"PRAGMA table_info({table})"))
    existing_columns = {row[1] for row in result}
    if column not in existing_columns:
        conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {col_type}"))

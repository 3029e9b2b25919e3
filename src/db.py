# src/db.py
#
# Cohort schedule tables.
# - Shared schema for "<cohort>_schedule" tables (mirrors create_cohort_schedule_table)
# - StoreError raised by every schedule store
# - SqliteScheduleStore: local stand-in for the hosted database (dev + tests)

import re
import sqlite3
import logging

logger = logging.getLogger(__name__)

TABLE_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# writable columns, in table order (created_at is filled by the database)
SCHEDULE_COLUMNS = [
    "id",
    "week_number",
    "session_number",
    "date",
    "time",
    "day",
    "session_type",
    "subject_type",
    "subject_name",
    "subject_topic",
    "initial_session_material",
    "session_material",
    "session_recording",
]

ORDER_BY = {
    "week_session": ["week_number", "session_number", "id"],
    "date": ["date", "id"],
}

# Run once in the hosted database's SQL editor so the API can create cohort tables.
SETUP_SQL = """CREATE OR REPLACE FUNCTION create_cohort_schedule_table(table_name TEXT)
RETURNS VOID AS $$
BEGIN
  EXECUTE format('
    CREATE TABLE IF NOT EXISTS public.%I (
      id BIGINT PRIMARY KEY,
      week_number INTEGER,
      session_number INTEGER,
      date DATE,
      time TIME,
      day TEXT,
      session_type TEXT,
      subject_type TEXT,
      subject_name TEXT,
      subject_topic TEXT,
      initial_session_material TEXT,
      session_material TEXT,
      session_recording TEXT,
      created_at TIMESTAMPTZ DEFAULT NOW()
    )', table_name);
END;
$$ LANGUAGE plpgsql SECURITY DEFINER;

GRANT EXECUTE ON FUNCTION create_cohort_schedule_table(TEXT) TO authenticated;
GRANT EXECUTE ON FUNCTION create_cohort_schedule_table(TEXT) TO service_role;"""


class StoreError(Exception):
    """A storage call failed. code carries the backend's error code when it has one."""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code


def is_valid_table_name(table_name) -> bool:
    return isinstance(table_name, str) and bool(TABLE_NAME_RE.match(table_name))


def manual_table_sql(table_name: str) -> str:
    """CREATE TABLE statement for one cohort table, for running by hand."""
    if not is_valid_table_name(table_name):
        raise ValueError(f"Invalid table name: {table_name!r}")
    return f"""CREATE TABLE IF NOT EXISTS public.{table_name} (
  id BIGINT PRIMARY KEY,
  week_number INTEGER,
  session_number INTEGER,
  date DATE,
  time TIME,
  day TEXT,
  session_type TEXT,
  subject_type TEXT,
  subject_name TEXT,
  subject_topic TEXT,
  initial_session_material TEXT,
  session_material TEXT,
  session_recording TEXT,
  created_at TIMESTAMPTZ DEFAULT NOW()
);"""


class SqliteScheduleStore:
    """
    Schedule store backed by a local SQLite file.
    Same operations as the hosted store; each call opens its own connection,
    so every write is independent (no batch transaction).
    """

    def __init__(self, db_path: str = "cohort_schedules.db"):
        self.db_path = db_path

    def _table(self, table_name: str) -> str:
        if not is_valid_table_name(table_name):
            raise StoreError(f"Invalid table name: {table_name!r}", code="invalid_table")
        return f'"{table_name}"'

    def create_schedule_table(self, table_name: str):
        """
        Create a cohort schedule table if it doesn't exist.
        Columns follow create_cohort_schedule_table; dates/times are ISO text.
        """
        table = self._table(table_name)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(f"""
                    CREATE TABLE IF NOT EXISTS {table} (
                        id INTEGER PRIMARY KEY,
                        week_number INTEGER,
                        session_number INTEGER,
                        date TEXT,
                        time TEXT,
                        day TEXT,
                        session_type TEXT,
                        subject_type TEXT,
                        subject_name TEXT,
                        subject_topic TEXT,
                        initial_session_material TEXT,
                        session_material TEXT,
                        session_recording TEXT,
                        created_at TEXT DEFAULT CURRENT_TIMESTAMP
                    )
                """)
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        logger.info("Created schedule table %s", table_name)

    def fetch_sessions(self, table_name: str, order_by: str = "week_session"):
        """
        Fetch every row of a schedule table.
        Returns: list of dicts, ordered by week/session (default) or by date.
        """
        table = self._table(table_name)
        if order_by not in ORDER_BY:
            raise ValueError(f"Unknown ordering: {order_by}")
        order_clause = ", ".join(f"{col} ASC" for col in ORDER_BY[order_by])
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.row_factory = sqlite3.Row
                cursor = conn.execute(f"SELECT * FROM {table} ORDER BY {order_clause}")
                return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def update_session(self, table_name: str, session_id: int, fields: dict):
        """Update the given columns of one row."""
        table = self._table(table_name)
        rejected = set(fields) - (set(SCHEDULE_COLUMNS) - {"id"})
        if rejected:
            raise StoreError(f"Cannot update columns: {sorted(rejected)}")
        assignments = ", ".join(f"{col} = ?" for col in fields)
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.execute(
                    f"UPDATE {table} SET {assignments} WHERE id = ?",
                    (*fields.values(), session_id),
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e

    def insert_sessions(self, table_name: str, rows: list) -> int:
        """
        Insert rows (dicts keyed by SCHEDULE_COLUMNS).
        Returns: number of rows inserted.
        """
        table = self._table(table_name)
        if not rows:
            return 0
        placeholders = ", ".join("?" for _ in SCHEDULE_COLUMNS)
        values = [tuple(row.get(col) for col in SCHEDULE_COLUMNS) for row in rows]
        try:
            with sqlite3.connect(self.db_path) as conn:
                conn.executemany(
                    f"INSERT INTO {table} ({', '.join(SCHEDULE_COLUMNS)}) VALUES ({placeholders})",
                    values,
                )
                conn.commit()
        except sqlite3.Error as e:
            raise StoreError(str(e)) from e
        return len(rows)

    def close(self):
        # connections are opened per call
        pass

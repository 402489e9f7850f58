"""SQLite database connection + schema initialization.

A single local SQLite file holds the master data (school settings, teachers,
subjects, classrooms, conditions) and saved timetables:
- schema created on first run
- foreign keys enabled

Every Streamlit page opens it through `db_session`.
"""

from __future__ import annotations

import logging
import os
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


logger = logging.getLogger(__name__)

DEFAULT_DB_FILENAME = "timetable.db"


@dataclass(frozen=True)
class DBConfig:
    """Database configuration for the app."""

    db_path: Path


def default_db_path() -> Path:
    """Resolve DB path.

    Uses `TIME_TABLE_DB` env var if set, else stores under `ui/database/`.
    """

    override = os.getenv("TIME_TABLE_DB")
    if override:
        return Path(override).expanduser().resolve()

    # Keep DB next to this file for portability
    return (Path(__file__).resolve().parent / DEFAULT_DB_FILENAME).resolve()


def get_connection(config: Optional[DBConfig] = None) -> sqlite3.Connection:
    """Create a SQLite connection with sane defaults."""

    db_path = (config.db_path if config else default_db_path())
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row

    # Ensure FK constraints are enforced
    conn.execute("PRAGMA foreign_keys = ON;")
    return conn


def init_db(conn: sqlite3.Connection) -> None:
    """Create all required tables if they do not exist."""

    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS school_settings (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            grade1_classes INTEGER NOT NULL DEFAULT 4 CHECK (grade1_classes BETWEEN 1 AND 20),
            grade2_classes INTEGER NOT NULL DEFAULT 4 CHECK (grade2_classes BETWEEN 1 AND 20),
            grade3_classes INTEGER NOT NULL DEFAULT 3 CHECK (grade3_classes BETWEEN 1 AND 20),
            daily_periods INTEGER NOT NULL DEFAULT 6 CHECK (daily_periods BETWEEN 1 AND 10),
            saturday_periods INTEGER NOT NULL DEFAULT 4 CHECK (saturday_periods BETWEEN 0 AND 8),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        INSERT OR IGNORE INTO school_settings (id) VALUES (1);

        CREATE TABLE IF NOT EXISTS subjects (
            subject_id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            -- [] means offered to every grade
            grades_json TEXT NOT NULL DEFAULT '[]',
            weekly_hours_json TEXT NOT NULL DEFAULT '{}',
            requires_special_classroom INTEGER NOT NULL DEFAULT 0 CHECK (requires_special_classroom IN (0,1)),
            classroom_type TEXT NOT NULL DEFAULT '',
            display_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS teachers (
            teacher_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            grades_json TEXT NOT NULL DEFAULT '[]',
            max_hours_per_week INTEGER NOT NULL DEFAULT 25 CHECK (max_hours_per_week BETWEEN 1 AND 60),
            assignment_restrictions_json TEXT NOT NULL DEFAULT '[]',
            display_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- many-to-many: teachers <-> subjects
        CREATE TABLE IF NOT EXISTS teacher_subjects (
            teacher_id TEXT NOT NULL,
            subject_id TEXT NOT NULL,
            PRIMARY KEY (teacher_id, subject_id),
            FOREIGN KEY (teacher_id) REFERENCES teachers(teacher_id) ON DELETE CASCADE,
            FOREIGN KEY (subject_id) REFERENCES subjects(subject_id) ON DELETE CASCADE
        );

        CREATE TABLE IF NOT EXISTS classrooms (
            classroom_id TEXT PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            classroom_type TEXT NOT NULL DEFAULT '普通教室',
            capacity INTEGER NOT NULL DEFAULT 35 CHECK (capacity > 0),
            count INTEGER NOT NULL DEFAULT 1 CHECK (count BETWEEN 1 AND 50),
            display_order INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        -- Free-text generation conditions (single row)
        CREATE TABLE IF NOT EXISTS conditions (
            id INTEGER PRIMARY KEY CHECK (id = 1),
            conditions TEXT NOT NULL DEFAULT '',
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        INSERT OR IGNORE INTO conditions (id) VALUES (1);

        -- -----------------------------
        -- Generated timetables (saved)
        -- -----------------------------

        CREATE TABLE IF NOT EXISTS timetables (
            timetable_id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            -- [day][period][slot] grid
            timetable_json TEXT NOT NULL DEFAULT '[]',
            statistics_json TEXT NOT NULL DEFAULT '{}',
            settings_json TEXT NOT NULL DEFAULT '{}',
            assignment_rate REAL NOT NULL DEFAULT 0,
            input_hash TEXT,
            is_active INTEGER NOT NULL DEFAULT 0 CHECK (is_active IN (0,1)),
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_timetables_hash ON timetables(input_hash);
        """
    )
    conn.commit()


class db_session:
    """Context manager that opens a connection and ensures schema exists."""

    def __init__(self, config: Optional[DBConfig] = None):
        self._config = config
        self._conn: Optional[sqlite3.Connection] = None

    def __enter__(self) -> sqlite3.Connection:
        self._conn = get_connection(self._config)
        init_db(self._conn)
        return self._conn

    def __exit__(self, exc_type, exc, tb) -> None:
        assert self._conn is not None
        if exc_type is None:
            self._conn.commit()
        else:
            logger.warning("Rolling back transaction: %s", exc)
            self._conn.rollback()
        self._conn.close()
        self._conn = None

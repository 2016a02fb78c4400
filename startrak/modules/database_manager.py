"""
Database Manager Module - StarTrak Attendance System

This module owns the SQLite database behind the attendance store.
It manages thread-local connections, schema creation, sample data seeding,
and provides query helpers plus a transaction context manager used by the
store for atomic status-and-audit writes.

Tables:
- users: staff accounts for the dashboard
- students: roster
- sessions: scheduled class instances
- attendance_records: one row per (student, session)
- parents / student_parent_links: checkout identities and authorizations
- audit_logs: change history for attendance records
"""

import sqlite3
import logging
import threading
import uuid
import os
from contextlib import contextmanager
from datetime import datetime, timedelta
from werkzeug.security import generate_password_hash


def new_id():
    """Generate a lowercase uuid string used as a primary key."""
    return str(uuid.uuid4())


class DatabaseManager:
    """
    SQLite database management for the attendance store.
    Handles connection management, schema creation and query execution.
    """

    def __init__(self, db_path, timeout=30.0, seed_default_data=False):
        """
        Initialize the database manager with the specified database path.

        Args:
            db_path (str): Path to the SQLite database file
            timeout (float): Seconds to wait on a locked database
            seed_default_data (bool): Insert sample data into empty tables
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)
        self._local = threading.local()

        directory = os.path.dirname(self.db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.initialize_database(seed_default_data=seed_default_data)

    @contextmanager
    def get_connection(self):
        """
        Context manager for database connections.
        Provides thread-local connections for thread safety.

        Yields:
            sqlite3.Connection: Database connection object
        """
        if not hasattr(self._local, 'connection'):
            self._local.connection = sqlite3.connect(
                self.db_path,
                check_same_thread=False,
                timeout=self.timeout
            )
            self._local.connection.row_factory = sqlite3.Row
            self._local.connection.execute("PRAGMA foreign_keys = ON")

        try:
            yield self._local.connection
        except Exception:
            self._local.connection.rollback()
            raise

    def initialize_database(self, seed_default_data=False):
        """
        Create all tables. Idempotent, safe to call on every startup.
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS users (
                    id TEXT PRIMARY KEY,
                    username VARCHAR(50) UNIQUE NOT NULL,
                    password_hash VARCHAR(255) NOT NULL,
                    full_name VARCHAR(100) NOT NULL,
                    email VARCHAR(100) UNIQUE,
                    role VARCHAR(20) NOT NULL DEFAULT 'staff',
                    is_active BOOLEAN DEFAULT 1,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS students (
                    id TEXT PRIMARY KEY,
                    name VARCHAR(100) NOT NULL,
                    student_code VARCHAR(20) UNIQUE NOT NULL,
                    email VARCHAR(100),
                    level VARCHAR(50),
                    subject VARCHAR(100),
                    status VARCHAR(20) NOT NULL DEFAULT 'active'
                        CHECK (status IN ('active', 'inactive', 'suspended')),
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    name VARCHAR(100) NOT NULL,
                    instructor VARCHAR(100),
                    start_time TIMESTAMP,
                    end_time TIMESTAMP,
                    capacity INTEGER DEFAULT 0,
                    enrolled INTEGER DEFAULT 0,
                    status VARCHAR(20) NOT NULL DEFAULT 'upcoming'
                        CHECK (status IN ('upcoming', 'active', 'completed')),
                    description TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS attendance_records (
                    id TEXT PRIMARY KEY,
                    student_id TEXT NOT NULL,
                    session_id TEXT NOT NULL,
                    check_in_time TIMESTAMP,
                    learning_start_time TIMESTAMP,
                    check_out_time TIMESTAMP,
                    status VARCHAR(20) NOT NULL DEFAULT 'absent'
                        CHECK (status IN ('absent', 'checked-in', 'learning', 'completed')),
                    notes TEXT,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE,
                    FOREIGN KEY (session_id) REFERENCES sessions(id) ON DELETE CASCADE,
                    UNIQUE(student_id, session_id)
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS parents (
                    id TEXT PRIMARY KEY,
                    full_name VARCHAR(100) NOT NULL,
                    email VARCHAR(100),
                    qr_code VARCHAR(20) UNIQUE NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS student_parent_links (
                    parent_id TEXT NOT NULL,
                    student_id TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    PRIMARY KEY (parent_id, student_id),
                    FOREIGN KEY (parent_id) REFERENCES parents(id) ON DELETE CASCADE,
                    FOREIGN KEY (student_id) REFERENCES students(id) ON DELETE CASCADE
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS audit_logs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    table_name VARCHAR(50) NOT NULL,
                    record_id TEXT NOT NULL,
                    action VARCHAR(10) NOT NULL,
                    old_values TEXT,
                    new_values TEXT,
                    changed_by VARCHAR(100),
                    changed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_session ON attendance_records(session_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_attendance_student ON attendance_records(student_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_audit_record ON audit_logs(table_name, record_id)")

            conn.commit()

            if seed_default_data:
                self._insert_default_data(cursor)
                conn.commit()

            self.logger.info("Database initialized successfully")

    def _insert_default_data(self, cursor):
        """
        Insert sample data into empty tables: an admin and a staff account,
        a small roster, three sessions (one active) and a linked parent.

        Args:
            cursor: Database cursor object
        """
        cursor.execute("SELECT COUNT(*) FROM users WHERE role = 'admin'")
        if cursor.fetchone()[0] == 0:
            cursor.executemany("""
                INSERT INTO users (id, username, password_hash, full_name, email, role)
                VALUES (?, ?, ?, ?, ?, ?)
            """, [
                (new_id(), 'admin', generate_password_hash('admin123'),
                 'Center Administrator', 'admin@startrak.local', 'admin'),
                (new_id(), 'staff', generate_password_hash('staff123'),
                 'Front Desk', 'frontdesk@startrak.local', 'staff'),
            ])

        cursor.execute("SELECT COUNT(*) FROM students")
        if cursor.fetchone()[0] == 0:
            sample_students = [
                (new_id(), 'Emma Wilson', 'STU001', 'emma.wilson@email.com', 'Grade 10', 'Mathematics'),
                (new_id(), 'James Rodriguez', 'STU002', 'james.rodriguez@email.com', 'Grade 11', 'Physics'),
                (new_id(), 'Sophia Chen', 'STU003', 'sophia.chen@email.com', 'Grade 9', 'Chemistry'),
                (new_id(), 'Marcus Johnson', 'STU004', 'marcus.johnson@email.com', 'Grade 12', 'Computer Science'),
                (new_id(), 'Isabella Martinez', 'STU005', 'isabella.martinez@email.com', 'Grade 10', 'English'),
                (new_id(), 'David Kim', 'STU006', 'david.kim@email.com', 'Grade 11', 'Mathematics'),
            ]
            cursor.executemany("""
                INSERT INTO students (id, name, student_code, email, level, subject)
                VALUES (?, ?, ?, ?, ?, ?)
            """, sample_students)

            parent_id = new_id()
            cursor.execute("""
                INSERT INTO parents (id, full_name, email, qr_code)
                VALUES (?, ?, ?, ?)
            """, (parent_id, 'Laura Wilson', 'laura.wilson@email.com', 'QR_WILSON01'))
            cursor.execute("""
                INSERT INTO student_parent_links (parent_id, student_id) VALUES (?, ?)
            """, (parent_id, sample_students[0][0]))

        cursor.execute("SELECT COUNT(*) FROM sessions")
        if cursor.fetchone()[0] == 0:
            today = datetime.now().replace(minute=0, second=0, microsecond=0)
            sample_sessions = [
                ('Advanced JavaScript Concepts', 'Dr. Sarah Thompson', today, 20, 'active'),
                ('Data Structures & Algorithms', 'Prof. Michael Brown', today + timedelta(hours=2), 15, 'upcoming'),
                ('React Development Workshop', 'Ms. Jennifer Lee', today + timedelta(days=1), 25, 'upcoming'),
            ]
            cursor.executemany("""
                INSERT INTO sessions (id, name, instructor, start_time, end_time, capacity, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, [
                (new_id(), name, instructor, start.isoformat(),
                 (start + timedelta(hours=2)).isoformat(), capacity, status)
                for name, instructor, start, capacity, status in sample_sessions
            ])

        self.logger.info("Default data inserted successfully")

    def execute_query(self, query, params=None, fetch_all=True):
        """
        Execute a SELECT query and return results.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters
            fetch_all (bool): Whether to fetch all results or just one

        Returns:
            list or dict: Query results
        """
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())

            if fetch_all:
                return [dict(row) for row in cursor.fetchall()]
            result = cursor.fetchone()
            return dict(result) if result else None

    def execute_update(self, query, params=None):
        """
        Execute an INSERT, UPDATE, or DELETE query and commit it.

        Args:
            query (str): SQL query string
            params (tuple): Query parameters

        Returns:
            int: Number of affected rows
        """
        with self.transaction() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params or ())
            return cursor.rowcount

    @contextmanager
    def transaction(self):
        """
        Context manager for database transactions with automatic rollback on error.

        Yields:
            sqlite3.Connection: Database connection within transaction
        """
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception as e:
                conn.rollback()
                self.logger.warning(f"Transaction rolled back: {str(e)}")
                raise

    def close_all_connections(self):
        """Close the calling thread's connection."""
        if hasattr(self._local, 'connection'):
            self._local.connection.close()
            del self._local.connection

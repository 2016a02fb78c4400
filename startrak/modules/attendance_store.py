"""
Attendance Store Module - StarTrak Attendance System

SQLite-backed implementation of the data contract the check-in and
check-out engines depend on. Engines receive a store instance in their
constructor; any object exposing the same methods (for example an in-memory
fake) can be used instead.

Contract:
- find_student_by_id(id) -> Student | None
- find_active_session() -> Session | None, AmbiguousSessionError if several
- find_attendance_record(student_id, session_id) -> AttendanceRecord | None
- get_attendance_record(record_id) -> AttendanceRecord | None
- insert_attendance_record(record) -> AttendanceRecord, DuplicateRecordError
  on an existing (student, session) pair
- conditional_update_attendance_record(id, expected_status, patch)
  -> AttendanceRecord | None (None when the status no longer matches)
- find_parent_by_qr_code(code) -> Parent | None
- is_parent_authorized_for_student(parent_id, student_id) -> bool

Connection failures and lock timeouts are raised as StoreUnavailableError.
"""

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from startrak.modules.audit_manager import record_audit, ACTION_INSERT, ACTION_UPDATE
from startrak.modules.database_manager import new_id
from startrak.modules.models import (
    AttendanceRecord, AttendanceStatus, Parent, Session, SessionStatus, Student, StudentStatus
)
from startrak.modules.qr_resolver import generate_parent_code

ATTENDANCE_TABLE = 'attendance_records'

# Columns a conditional update may touch
PATCHABLE_COLUMNS = ('status', 'check_in_time', 'learning_start_time', 'check_out_time', 'notes')


class StoreError(Exception):
    """Base class for attendance store failures."""


class StoreUnavailableError(StoreError):
    """The database could not be reached or stayed locked past the timeout."""


class DuplicateRecordError(StoreError):
    """An attendance record already exists for the (student, session) pair."""


class AmbiguousSessionError(StoreError):
    """More than one session is marked active."""


def _serialize(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


class AttendanceStore:
    """
    Attendance data access over a DatabaseManager.
    Publishes a change event to the notifier after each committed
    attendance write.
    """

    def __init__(self, database_manager, notifier=None):
        """
        Args:
            database_manager: DatabaseManager instance
            notifier: NotificationSystem receiving change events (optional)
        """
        self.db = database_manager
        self.notifier = notifier
        self.logger = logging.getLogger(__name__)

    @contextmanager
    def _store_call(self, operation: str):
        try:
            yield
        except (StoreError, sqlite3.IntegrityError):
            raise
        except sqlite3.Error as e:
            self.logger.error(f"Attendance store unavailable during {operation}: {str(e)}")
            raise StoreUnavailableError(f"{operation} failed: {str(e)}") from e

    def _publish(self, event: str, record: AttendanceRecord) -> None:
        if self.notifier is not None:
            self.notifier.publish(event, ATTENDANCE_TABLE, record.to_dict())

    # Students

    def find_student_by_id(self, student_id: str) -> Optional[Student]:
        with self._store_call('student lookup'):
            row = self.db.execute_query(
                "SELECT * FROM students WHERE id = ?",
                (student_id,),
                fetch_all=False
            )
        return Student.from_row(row) if row else None

    def create_student(self, name: str, student_code: str, status=StudentStatus.ACTIVE,
                       email: Optional[str] = None, level: Optional[str] = None,
                       subject: Optional[str] = None) -> Student:
        student_id = new_id()
        with self._store_call('student insert'):
            self.db.execute_update(
                """INSERT INTO students (id, name, student_code, email, level, subject, status)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (student_id, name, student_code, email, level, subject, StudentStatus(status).value)
            )
        return self.find_student_by_id(student_id)

    # Sessions

    def find_active_session(self) -> Optional[Session]:
        with self._store_call('active session lookup'):
            rows = self.db.execute_query(
                "SELECT * FROM sessions WHERE status = ? ORDER BY start_time LIMIT 2",
                (SessionStatus.ACTIVE.value,)
            )
        if len(rows) > 1:
            raise AmbiguousSessionError("More than one session is active")
        return Session.from_row(rows[0]) if rows else None

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._store_call('session lookup'):
            row = self.db.execute_query(
                "SELECT * FROM sessions WHERE id = ?",
                (session_id,),
                fetch_all=False
            )
        return Session.from_row(row) if row else None

    def create_session(self, name: str, instructor: Optional[str] = None,
                       start_time: Optional[str] = None, end_time: Optional[str] = None,
                       capacity: int = 0, status=SessionStatus.UPCOMING,
                       description: Optional[str] = None) -> Session:
        session_id = new_id()
        with self._store_call('session insert'):
            self.db.execute_update(
                """INSERT INTO sessions (id, name, instructor, start_time, end_time, capacity, status, description)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                (session_id, name, instructor, start_time, end_time, capacity,
                 SessionStatus(status).value, description)
            )
        return self.get_session(session_id)

    def update_session_status(self, session_id: str, status) -> Optional[Session]:
        status = SessionStatus(status)
        with self._store_call('session status update'):
            affected = self.db.execute_update(
                "UPDATE sessions SET status = ? WHERE id = ?",
                (status.value, session_id)
            )
        if not affected:
            return None
        self.logger.info(f"Session {session_id} marked {status.value}")
        return self.get_session(session_id)

    # Attendance records

    def find_attendance_record(self, student_id: str, session_id: str) -> Optional[AttendanceRecord]:
        with self._store_call('attendance lookup'):
            row = self.db.execute_query(
                "SELECT * FROM attendance_records WHERE student_id = ? AND session_id = ?",
                (student_id, session_id),
                fetch_all=False
            )
        return AttendanceRecord.from_row(row) if row else None

    def get_attendance_record(self, record_id: str) -> Optional[AttendanceRecord]:
        with self._store_call('attendance lookup'):
            row = self.db.execute_query(
                "SELECT * FROM attendance_records WHERE id = ?",
                (record_id,),
                fetch_all=False
            )
        return AttendanceRecord.from_row(row) if row else None

    def insert_attendance_record(self, record: AttendanceRecord,
                                 changed_by: Optional[str] = None) -> AttendanceRecord:
        """
        Insert a new attendance record.

        Raises:
            DuplicateRecordError: The (student, session) pair already has a record
        """
        values = record.to_dict()
        values['id'] = record.id or new_id()

        try:
            with self._store_call('attendance insert'):
                with self.db.transaction() as conn:
                    cursor = conn.cursor()
                    cursor.execute(
                        """INSERT INTO attendance_records
                           (id, student_id, session_id, check_in_time, learning_start_time,
                            check_out_time, status, notes)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                        (values['id'], values['student_id'], values['session_id'],
                         values['check_in_time'], values['learning_start_time'],
                         values['check_out_time'], values['status'], values['notes'])
                    )
                    record_audit(cursor, ATTENDANCE_TABLE, values['id'], ACTION_INSERT,
                                 None, values, changed_by)
        except sqlite3.IntegrityError as e:
            if 'UNIQUE' in str(e).upper():
                raise DuplicateRecordError(
                    f"Attendance record exists for student {record.student_id} in session {record.session_id}"
                ) from e
            raise StoreError(f"Attendance insert rejected: {str(e)}") from e

        inserted = AttendanceRecord.from_row(values)
        self._publish(ACTION_INSERT, inserted)
        return inserted

    def conditional_update_attendance_record(self, record_id: str, expected_status: AttendanceStatus,
                                             patch: Dict[str, Any],
                                             changed_by: Optional[str] = None) -> Optional[AttendanceRecord]:
        """
        Apply ``patch`` only if the record's status is still ``expected_status``.

        The status check and the write are one UPDATE statement, so two
        concurrent callers can never both succeed from the same status.

        Returns:
            AttendanceRecord: The updated record, or None on a status conflict
            or a missing record
        """
        unknown = set(patch) - set(PATCHABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot patch attendance columns: {', '.join(sorted(unknown))}")
        if not patch:
            raise ValueError("Empty attendance patch")

        columns = list(patch)
        assignments = ', '.join(f"{column} = ?" for column in columns)
        params = [_serialize(patch[column]) for column in columns]

        with self._store_call('attendance conditional update'):
            with self.db.transaction() as conn:
                cursor = conn.cursor()
                # Take the write lock first so the audit row sees the same old values
                cursor.execute("BEGIN IMMEDIATE")
                cursor.execute("SELECT * FROM attendance_records WHERE id = ?", (record_id,))
                before = cursor.fetchone()

                cursor.execute(
                    f"""UPDATE attendance_records
                        SET {assignments}, updated_at = CURRENT_TIMESTAMP
                        WHERE id = ? AND status = ?""",
                    params + [record_id, AttendanceStatus(expected_status).value]
                )
                if cursor.rowcount == 0:
                    return None

                cursor.execute("SELECT * FROM attendance_records WHERE id = ?", (record_id,))
                after = dict(cursor.fetchone())

                old_values = {column: before[column] for column in columns}
                new_values = {column: after[column] for column in columns}
                record_audit(cursor, ATTENDANCE_TABLE, record_id, ACTION_UPDATE,
                             old_values, new_values, changed_by)

        updated = AttendanceRecord.from_row(after)
        self._publish(ACTION_UPDATE, updated)
        return updated

    def insert_absent_records(self, session_id: str, student_ids: Iterable[str],
                              changed_by: Optional[str] = None) -> List[AttendanceRecord]:
        """
        Create ``absent`` records for a session, skipping students that
        already have one.

        Returns:
            List[AttendanceRecord]: Only the newly created records
        """
        created = []
        try:
            with self._store_call('session population'):
                with self.db.transaction() as conn:
                    cursor = conn.cursor()
                    for student_id in dict.fromkeys(student_ids):
                        record = AttendanceRecord(id=new_id(), student_id=student_id, session_id=session_id)
                        values = record.to_dict()
                        cursor.execute(
                            """INSERT OR IGNORE INTO attendance_records (id, student_id, session_id, status)
                               VALUES (?, ?, ?, ?)""",
                            (values['id'], student_id, session_id, values['status'])
                        )
                        if cursor.rowcount:
                            record_audit(cursor, ATTENDANCE_TABLE, values['id'], ACTION_INSERT,
                                         None, values, changed_by)
                            created.append(record)
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Session population rejected: {str(e)}") from e

        for record in created:
            self._publish(ACTION_INSERT, record)
        return created

    def list_session_attendance(self, session_id: str) -> List[Dict[str, Any]]:
        """Attendance rows for a session joined with student names."""
        with self._store_call('session attendance listing'):
            return self.db.execute_query(
                """SELECT a.*, s.name AS student_name, s.student_code
                   FROM attendance_records a
                   JOIN students s ON a.student_id = s.id
                   WHERE a.session_id = ?
                   ORDER BY s.name""",
                (session_id,)
            )

    # Parents

    def find_parent_by_qr_code(self, qr_code: str) -> Optional[Parent]:
        with self._store_call('parent lookup'):
            row = self.db.execute_query(
                "SELECT * FROM parents WHERE qr_code = ?",
                (qr_code,),
                fetch_all=False
            )
        return Parent.from_row(row) if row else None

    def get_parent(self, parent_id: str) -> Optional[Parent]:
        with self._store_call('parent lookup'):
            row = self.db.execute_query(
                "SELECT * FROM parents WHERE id = ?",
                (parent_id,),
                fetch_all=False
            )
        return Parent.from_row(row) if row else None

    def is_parent_authorized_for_student(self, parent_id: str, student_id: str) -> bool:
        with self._store_call('parent authorization lookup'):
            row = self.db.execute_query(
                "SELECT 1 AS linked FROM student_parent_links WHERE parent_id = ? AND student_id = ?",
                (parent_id, student_id),
                fetch_all=False
            )
        return row is not None

    def create_parent(self, full_name: str, email: Optional[str] = None,
                      qr_code: Optional[str] = None) -> Parent:
        parent_id = new_id()
        with self._store_call('parent insert'):
            self.db.execute_update(
                "INSERT INTO parents (id, full_name, email, qr_code) VALUES (?, ?, ?, ?)",
                (parent_id, full_name, email, qr_code or generate_parent_code())
            )
        return self.get_parent(parent_id)

    def update_parent_qr_code(self, parent_id: str, qr_code: str) -> Optional[Parent]:
        with self._store_call('parent QR code update'):
            affected = self.db.execute_update(
                "UPDATE parents SET qr_code = ? WHERE id = ?",
                (qr_code, parent_id)
            )
        return self.get_parent(parent_id) if affected else None

    def link_parent_to_students(self, parent_id: str, student_ids: Iterable[str]) -> List[str]:
        """Replace the set of students a parent may check out."""
        student_ids = list(dict.fromkeys(student_ids))
        try:
            with self._store_call('parent link replacement'):
                with self.db.transaction() as conn:
                    cursor = conn.cursor()
                    cursor.execute("DELETE FROM student_parent_links WHERE parent_id = ?", (parent_id,))
                    cursor.executemany(
                        "INSERT INTO student_parent_links (parent_id, student_id) VALUES (?, ?)",
                        [(parent_id, student_id) for student_id in student_ids]
                    )
        except sqlite3.IntegrityError as e:
            raise StoreError(f"Parent link replacement rejected: {str(e)}") from e
        self.logger.info(f"Parent {parent_id} linked to {len(student_ids)} student(s)")
        return student_ids

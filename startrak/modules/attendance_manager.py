"""
Attendance Manager Module - StarTrak Attendance System

Staff-driven attendance operations from the dashboard:

- manual single-step advancement along absent -> checked-in -> learning -> completed
- populating a session with ``absent`` records for its enrolled students
- per-session attendance listings and status counts

Advancement uses the store's conditional update, the same primitive as the
QR engines, so a dashboard click racing a kiosk scan never moves a record
backward or stamps a timestamp twice.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional

from startrak.modules.models import AttendanceRecord, AttendanceStatus, transition_patch


@dataclass
class AttendanceStats:
    """Status counts for one session."""
    total_students: int = 0
    absent: int = 0
    checked_in: int = 0
    learning: int = 0
    completed: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class AttendanceManager:
    """
    Dashboard attendance operations over an injected attendance store.
    """

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the attendance manager.

        Args:
            store: Attendance store instance
            clock: Returns the current time, defaults to datetime.now
        """
        self.store = store
        self.clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)

    def advance_attendance(self, record_id: str, changed_by: Optional[str] = None) -> Optional[AttendanceRecord]:
        """
        Move an attendance record one step forward.

        Only the target state's timestamp is stamped. A completed record is
        returned unchanged. If another writer moved the record first, the
        freshly read record is returned instead of advancing it again.

        Args:
            record_id (str): Attendance record id
            changed_by (str): Staff user recorded in the audit log

        Returns:
            AttendanceRecord: Record after the call, or None if it does not exist
        """
        record = self.store.get_attendance_record(record_id)
        if record is None:
            self.logger.warning(f"No attendance record found with ID: {record_id}")
            return None

        target = record.status.next_status()
        if target is None:
            self.logger.info(f"Attendance record {record_id} already completed, nothing to advance")
            return record

        updated = self.store.conditional_update_attendance_record(
            record.id,
            record.status,
            transition_patch(target, self.clock()),
            changed_by=changed_by
        )
        if updated is None:
            self.logger.info(f"Attendance record {record_id} changed concurrently, not advancing")
            return self.store.get_attendance_record(record_id)

        self.logger.info(f"Attendance record {record_id} advanced {record.status.value} -> {target.value}")
        return updated

    def populate_session(self, session_id: str, student_ids: Iterable[str],
                         changed_by: Optional[str] = None) -> List[AttendanceRecord]:
        """
        Create ``absent`` records for the students enrolled in a session.
        Students that already have a record for the session are skipped.

        Returns:
            List[AttendanceRecord]: Newly created records
        """
        created = self.store.insert_absent_records(session_id, student_ids, changed_by=changed_by)
        self.logger.info(f"Session {session_id} populated with {len(created)} new attendance record(s)")
        return created

    def get_session_attendance(self, session_id: str) -> Dict[str, Any]:
        """
        Attendance listing and status counts for a session.

        Returns:
            Dict[str, Any]: records (with student names) and stats
        """
        rows = self.store.list_session_attendance(session_id)
        records = []
        for row in rows:
            record = AttendanceRecord.from_row(row).to_dict()
            record['student_name'] = row['student_name']
            record['student_code'] = row['student_code']
            records.append(record)

        return {
            'session_id': session_id,
            'records': records,
            'stats': self.summarize(AttendanceStatus(row['status']) for row in rows).to_dict()
        }

    @staticmethod
    def summarize(statuses: Iterable[AttendanceStatus]) -> AttendanceStats:
        stats = AttendanceStats()
        for status in statuses:
            stats.total_students += 1
            if status is AttendanceStatus.ABSENT:
                stats.absent += 1
            elif status is AttendanceStatus.CHECKED_IN:
                stats.checked_in += 1
            elif status is AttendanceStatus.LEARNING:
                stats.learning += 1
            elif status is AttendanceStatus.COMPLETED:
                stats.completed += 1
        return stats

"""
Check-In Manager Module - StarTrak Attendance System

Kiosk check-in: resolves a scanned student QR code, finds the active
session and moves the student's attendance record to ``checked-in``.

Outcomes are returned as tagged CheckInResult values, never raised.
A repeat scan is reported as ``already-checked-in`` and leaves the record
untouched; the ``absent -> checked-in`` write is a conditional update, so
two racing scans cannot both succeed.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from startrak.modules.attendance_store import (
    AmbiguousSessionError, DuplicateRecordError, StoreError, StoreUnavailableError
)
from startrak.modules.models import (
    AttendanceRecord, AttendanceStatus, ResultStatus, Student, format_display_time, transition_patch
)
from startrak.modules.qr_resolver import extract_student_id

SUCCESS_MESSAGE = 'Successfully checked in!'


@dataclass
class CheckInResult:
    """Outcome of one check-in scan."""
    success: bool
    status: ResultStatus
    message: str
    student_name: str = ''
    student_id: str = ''
    check_in_time: str = ''
    current_status: Optional[AttendanceStatus] = None
    attendance_record: Optional[AttendanceRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'status': self.status.value,
            'severity': self.status.severity,
            'message': self.message,
            'student_name': self.student_name,
            'student_id': self.student_id,
            'check_in_time': self.check_in_time,
            'current_status': self.current_status.value if self.current_status else None,
            'attendance_record': self.attendance_record.to_dict() if self.attendance_record else None
        }


class CheckInManager:
    """
    Check-in transition engine over an injected attendance store.
    """

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None):
        """
        Args:
            store: Attendance store (see attendance_store for the contract)
            clock: Returns the current time, defaults to datetime.now
        """
        self.store = store
        self.clock = clock or datetime.now
        self.logger = logging.getLogger(__name__)

    def process_check_in(self, qr_code: str) -> CheckInResult:
        """
        Process a scanned student QR code.

        Args:
            qr_code (str): Raw scanned payload

        Returns:
            CheckInResult: Tagged outcome
        """
        student_id = extract_student_id(qr_code)
        if student_id is None:
            self.logger.warning(f"Rejected malformed check-in code: {qr_code!r}")
            return CheckInResult(
                success=False,
                status=ResultStatus.INVALID_CODE,
                message='Invalid QR code format'
            )

        student = None
        try:
            student = self.store.find_student_by_id(student_id)
            if student is None:
                return CheckInResult(
                    success=False,
                    status=ResultStatus.STUDENT_NOT_FOUND,
                    message='Student not found'
                )

            if not student.is_active:
                self.logger.warning(f"Check-in refused for {student.status.value} student {student.student_code}")
                return self._failure(student, ResultStatus.STUDENT_INACTIVE, 'Student account is not active')

            try:
                session = self.store.find_active_session()
            except AmbiguousSessionError:
                self.logger.error("Check-in refused: more than one session is active")
                return self._failure(student, ResultStatus.AMBIGUOUS_SESSION,
                                     'More than one session is active, ask staff to resolve')

            if session is None:
                return self._failure(student, ResultStatus.NO_ACTIVE_SESSION, 'No active session found')

            return self._check_in(student, session.id)

        except StoreUnavailableError as e:
            self.logger.error(f"Check-in failed, store unavailable: {str(e)}")
            return self._failure(student, ResultStatus.STORE_UNAVAILABLE,
                                 'Attendance service is unavailable, please scan again')
        except StoreError as e:
            self.logger.error(f"Check-in failed: {str(e)}")
            return self._failure(student, ResultStatus.ERROR, 'Failed to record attendance')

    def _check_in(self, student: Student, session_id: str) -> CheckInResult:
        existing = self.store.find_attendance_record(student.id, session_id)
        now = self.clock()

        if existing is None:
            record = AttendanceRecord(id=None, student_id=student.id, session_id=session_id)
            for column, value in transition_patch(AttendanceStatus.CHECKED_IN, now).items():
                setattr(record, column, value)
            try:
                created = self.store.insert_attendance_record(record)
            except DuplicateRecordError:
                # Another station created the record between lookup and insert
                existing = self.store.find_attendance_record(student.id, session_id)
                if existing is None:
                    raise
                if existing.status is not AttendanceStatus.ABSENT:
                    return self._already_checked_in(student, existing)
            else:
                return self._success(student, created)

        if existing.status is not AttendanceStatus.ABSENT:
            return self._already_checked_in(student, existing)

        updated = self.store.conditional_update_attendance_record(
            existing.id,
            AttendanceStatus.ABSENT,
            transition_patch(AttendanceStatus.CHECKED_IN, now)
        )
        if updated is None:
            # Lost the race: the record left "absent" after we read it
            current = self.store.get_attendance_record(existing.id) or existing
            return self._already_checked_in(student, current)

        return self._success(student, updated)

    def _success(self, student: Student, record: AttendanceRecord) -> CheckInResult:
        self.logger.info(f"Checked in {student.student_code} for session {record.session_id}")
        return CheckInResult(
            success=True,
            status=ResultStatus.SUCCESS,
            message=SUCCESS_MESSAGE,
            student_name=student.name,
            student_id=student.student_code,
            check_in_time=format_display_time(record.check_in_time),
            current_status=record.status,
            attendance_record=record
        )

    def _already_checked_in(self, student: Student, record: AttendanceRecord) -> CheckInResult:
        check_in_time = format_display_time(record.check_in_time)
        message = f"Already checked in at {check_in_time or 'unknown time'}"
        if record.status in (AttendanceStatus.LEARNING, AttendanceStatus.COMPLETED):
            message += f" (currently {record.status.value})"

        self.logger.info(f"Duplicate check-in for {student.student_code}, record is {record.status.value}")
        return CheckInResult(
            success=False,
            status=ResultStatus.ALREADY_CHECKED_IN,
            message=message,
            student_name=student.name,
            student_id=student.student_code,
            check_in_time=check_in_time,
            current_status=record.status,
            attendance_record=record
        )

    @staticmethod
    def _failure(student: Optional[Student], status: ResultStatus, message: str) -> CheckInResult:
        return CheckInResult(
            success=False,
            status=status,
            message=message,
            student_name=student.name if student else '',
            student_id=student.student_code if student else ''
        )

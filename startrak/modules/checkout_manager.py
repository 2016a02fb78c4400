"""
Check-Out Manager Module - StarTrak Attendance System

Parent-initiated checkout. A parent scans their own QR code for a student
they are linked to; the student's open attendance record in the active
session is closed out as ``completed`` with an audit note naming the parent.

``completed`` is terminal: a record that is already checked out is never
written again through this path.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from startrak.modules.attendance_store import (
    AmbiguousSessionError, StoreError, StoreUnavailableError
)
from startrak.modules.models import (
    AttendanceRecord, AttendanceStatus, Parent, ResultStatus, Student, format_display_time, transition_patch
)
from startrak.modules.qr_resolver import is_parent_code

SUCCESS_MESSAGE = 'Successfully checked out!'


@dataclass
class CheckOutResult:
    """Outcome of one parent checkout scan."""
    success: bool
    status: ResultStatus
    message: str
    parent_name: str = ''
    student_name: str = ''
    student_id: str = ''
    check_out_time: str = ''
    attendance_record: Optional[AttendanceRecord] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'status': self.status.value,
            'severity': self.status.severity,
            'message': self.message,
            'parent_name': self.parent_name,
            'student_name': self.student_name,
            'student_id': self.student_id,
            'check_out_time': self.check_out_time,
            'attendance_record': self.attendance_record.to_dict() if self.attendance_record else None
        }


def checkout_note(parent: Parent, existing_notes: Optional[str] = None) -> str:
    """Append the checkout audit note to a record's existing notes."""
    note = f"Checked out by parent {parent.full_name} ({parent.id})"
    return f"{existing_notes}\n{note}" if existing_notes else note


class CheckOutManager:
    """
    Check-out transition engine over an injected attendance store.
    """

    def __init__(self, store, clock: Optional[Callable[[], datetime]] = None, max_attempts: int = 3):
        """
        Args:
            store: Attendance store (see attendance_store for the contract)
            clock: Returns the current time, defaults to datetime.now
            max_attempts (int): Conditional update attempts when staff
                advance the same record concurrently
        """
        self.store = store
        self.clock = clock or datetime.now
        self.max_attempts = max(1, max_attempts)
        self.logger = logging.getLogger(__name__)

    def process_check_out(self, parent_qr_code: str, student_id: str) -> CheckOutResult:
        """
        Check a student out on behalf of a parent.

        Args:
            parent_qr_code (str): Parent's scanned QR payload
            student_id (str): Internal id of the student being picked up

        Returns:
            CheckOutResult: Tagged outcome
        """
        parent = None
        student = None
        try:
            parent = self.store.find_parent_by_qr_code(parent_qr_code) if is_parent_code(parent_qr_code) else None
            if parent is None:
                self.logger.warning("Rejected checkout with unknown parent code")
                return CheckOutResult(
                    success=False,
                    status=ResultStatus.INVALID_CODE,
                    message='Invalid parent QR code'
                )

            if not self.store.is_parent_authorized_for_student(parent.id, student_id):
                self.logger.warning(f"Parent {parent.id} is not authorized to check out student {student_id}")
                return CheckOutResult(
                    success=False,
                    status=ResultStatus.NOT_AUTHORIZED,
                    message=f"{parent.full_name} is not authorized to check out this student",
                    parent_name=parent.full_name
                )

            student = self.store.find_student_by_id(student_id)
            if student is None or not student.is_active:
                return self._failure(parent, student, ResultStatus.ERROR, 'Student account is not active')

            try:
                session = self.store.find_active_session()
            except AmbiguousSessionError:
                self.logger.error("Checkout refused: more than one session is active")
                return self._failure(parent, student, ResultStatus.AMBIGUOUS_SESSION,
                                     'More than one session is active, ask staff to resolve')

            if session is None:
                return self._failure(parent, student, ResultStatus.ERROR, 'No active session found')

            return self._check_out(parent, student, session.id)

        except StoreUnavailableError as e:
            self.logger.error(f"Checkout failed, store unavailable: {str(e)}")
            return self._failure(parent, student, ResultStatus.STORE_UNAVAILABLE,
                                 'Attendance service is unavailable, please scan again')
        except StoreError as e:
            self.logger.error(f"Checkout failed: {str(e)}")
            return self._failure(parent, student, ResultStatus.ERROR, 'Failed to record checkout')

    def _check_out(self, parent: Parent, student: Student, session_id: str) -> CheckOutResult:
        record = self.store.find_attendance_record(student.id, session_id)

        for _ in range(self.max_attempts):
            if record is None or record.status is AttendanceStatus.ABSENT:
                return self._failure(parent, student, ResultStatus.NOT_CHECKED_IN,
                                     f"{student.name} is not checked in")

            if record.status is AttendanceStatus.COMPLETED:
                checked_out_at = format_display_time(record.check_out_time)
                result = self._failure(parent, student, ResultStatus.ERROR,
                                       f"Already checked out at {checked_out_at or 'unknown time'}")
                result.check_out_time = checked_out_at
                result.attendance_record = record
                return result

            patch = transition_patch(AttendanceStatus.COMPLETED, self.clock())
            patch['notes'] = checkout_note(parent, record.notes)

            updated = self.store.conditional_update_attendance_record(
                record.id, record.status, patch, changed_by=f"parent:{parent.id}"
            )
            if updated is not None:
                self.logger.info(f"Parent {parent.id} checked out {student.student_code} from session {session_id}")
                return CheckOutResult(
                    success=True,
                    status=ResultStatus.SUCCESS,
                    message=SUCCESS_MESSAGE,
                    parent_name=parent.full_name,
                    student_name=student.name,
                    student_id=student.student_code,
                    check_out_time=format_display_time(updated.check_out_time),
                    attendance_record=updated
                )

            # Status moved since we read it; look again
            record = self.store.get_attendance_record(record.id)

        self.logger.error(f"Checkout of {student.student_code} gave up after {self.max_attempts} conflicting attempts")
        return self._failure(parent, student, ResultStatus.ERROR, 'Attendance record is busy, please scan again')

    @staticmethod
    def _failure(parent: Optional[Parent], student: Optional[Student],
                 status: ResultStatus, message: str) -> CheckOutResult:
        return CheckOutResult(
            success=False,
            status=status,
            message=message,
            parent_name=parent.full_name if parent else '',
            student_name=student.name if student else '',
            student_id=student.student_code if student else ''
        )

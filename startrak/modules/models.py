"""
Domain Models Module - StarTrak Attendance System

Typed records for the entities the check-in and check-out engines work with,
and the closed status vocabularies they move between. Rows coming out of the
attendance store are converted here, so an unknown status string fails loudly
at load time instead of leaking into transition logic.

Attendance lifecycle:
    absent -> checked-in -> learning -> completed

Each forward step stamps exactly one timestamp, the one belonging to the
target state.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

DISPLAY_TIME_FORMAT = '%I:%M:%S %p'


def format_display_time(value: Optional[datetime]) -> str:
    """Render a timestamp the way the scanning kiosk shows it."""
    return value.strftime(DISPLAY_TIME_FORMAT) if value else ''


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


class StudentStatus(Enum):
    ACTIVE = 'active'
    INACTIVE = 'inactive'
    SUSPENDED = 'suspended'


class SessionStatus(Enum):
    UPCOMING = 'upcoming'
    ACTIVE = 'active'
    COMPLETED = 'completed'


class AttendanceStatus(Enum):
    """Attendance state, ordered absent < checked-in < learning < completed."""

    ABSENT = 'absent'
    CHECKED_IN = 'checked-in'
    LEARNING = 'learning'
    COMPLETED = 'completed'

    @property
    def rank(self) -> int:
        return _ATTENDANCE_ORDER.index(self)

    def __lt__(self, other):
        if not isinstance(other, AttendanceStatus):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, AttendanceStatus):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, AttendanceStatus):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, AttendanceStatus):
            return NotImplemented
        return self.rank >= other.rank

    @property
    def is_terminal(self) -> bool:
        return self is AttendanceStatus.COMPLETED

    def next_status(self) -> Optional['AttendanceStatus']:
        """Return the following state, or None when already completed."""
        if self.is_terminal:
            return None
        return _ATTENDANCE_ORDER[self.rank + 1]

    @property
    def timestamp_field(self) -> Optional[str]:
        """Timestamp column stamped when a record enters this state."""
        return _TIMESTAMP_FIELDS.get(self)


_ATTENDANCE_ORDER = [
    AttendanceStatus.ABSENT,
    AttendanceStatus.CHECKED_IN,
    AttendanceStatus.LEARNING,
    AttendanceStatus.COMPLETED,
]

_TIMESTAMP_FIELDS = {
    AttendanceStatus.CHECKED_IN: 'check_in_time',
    AttendanceStatus.LEARNING: 'learning_start_time',
    AttendanceStatus.COMPLETED: 'check_out_time',
}


def transition_patch(target: AttendanceStatus, now: datetime) -> Dict[str, Any]:
    """
    Build the column patch for moving a record into ``target``.

    The status and its single timestamp always travel together so a write
    either applies both or neither.
    """
    patch: Dict[str, Any] = {'status': target}
    if target.timestamp_field:
        patch[target.timestamp_field] = now
    return patch


class ResultStatus(Enum):
    """Outcome tags returned by the check-in and check-out engines."""

    SUCCESS = 'success'
    ALREADY_CHECKED_IN = 'already-checked-in'
    INVALID_CODE = 'invalid-code'
    STUDENT_NOT_FOUND = 'student-not-found'
    STUDENT_INACTIVE = 'student-inactive'
    NO_ACTIVE_SESSION = 'no-active-session'
    AMBIGUOUS_SESSION = 'ambiguous-session'
    NOT_AUTHORIZED = 'not-authorized'
    NOT_CHECKED_IN = 'not-checked-in'
    STORE_UNAVAILABLE = 'store-unavailable'
    ERROR = 'error'

    @property
    def severity(self) -> str:
        # green / amber / red on the kiosk
        if self is ResultStatus.SUCCESS:
            return 'success'
        if self is ResultStatus.ALREADY_CHECKED_IN:
            return 'warning'
        return 'error'


@dataclass
class Student:
    """Roster entry as seen by the transition engines."""
    id: str
    name: str
    student_code: str
    status: StudentStatus
    email: Optional[str] = None
    level: Optional[str] = None
    subject: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.status is StudentStatus.ACTIVE

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Student':
        return cls(
            id=row['id'],
            name=row['name'],
            student_code=row['student_code'],
            status=StudentStatus(row['status']),
            email=row.get('email'),
            level=row.get('level'),
            subject=row.get('subject'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass
class Session:
    """Scheduled class instance."""
    id: str
    name: str
    status: SessionStatus
    instructor: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    capacity: int = 0
    enrolled: int = 0
    description: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Session':
        return cls(
            id=row['id'],
            name=row['name'],
            status=SessionStatus(row['status']),
            instructor=row.get('instructor'),
            start_time=row.get('start_time'),
            end_time=row.get('end_time'),
            capacity=row.get('capacity') or 0,
            enrolled=row.get('enrolled') or 0,
            description=row.get('description'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['status'] = self.status.value
        return data


@dataclass
class AttendanceRecord:
    """Per-(student, session) attendance state."""
    id: Optional[str]
    student_id: str
    session_id: str
    status: AttendanceStatus = AttendanceStatus.ABSENT
    check_in_time: Optional[datetime] = None
    learning_start_time: Optional[datetime] = None
    check_out_time: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'AttendanceRecord':
        return cls(
            id=row['id'],
            student_id=row['student_id'],
            session_id=row['session_id'],
            status=AttendanceStatus(row['status']),
            check_in_time=_parse_timestamp(row.get('check_in_time')),
            learning_start_time=_parse_timestamp(row.get('learning_start_time')),
            check_out_time=_parse_timestamp(row.get('check_out_time')),
            notes=row.get('notes'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'student_id': self.student_id,
            'session_id': self.session_id,
            'status': self.status.value,
            'check_in_time': self.check_in_time.isoformat() if self.check_in_time else None,
            'learning_start_time': self.learning_start_time.isoformat() if self.learning_start_time else None,
            'check_out_time': self.check_out_time.isoformat() if self.check_out_time else None,
            'notes': self.notes,
        }


@dataclass
class Parent:
    """Parent identity allowed to check out linked students."""
    id: str
    full_name: str
    qr_code: str
    email: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> 'Parent':
        return cls(
            id=row['id'],
            full_name=row['full_name'],
            qr_code=row['qr_code'],
            email=row.get('email'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

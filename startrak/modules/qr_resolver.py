"""
QR Resolver Module - StarTrak Attendance System

Pure parsing of scanned QR payloads. Two code families exist:

- student codes: ``STU_<student uuid>_<millisecond timestamp>``
- parent codes:  ``QR_<8 uppercase alphanumerics>``

Resolution never raises; anything that does not match a format exactly is
reported as "no match".
"""

import re
import secrets
import string
import time
from dataclasses import dataclass
from typing import Optional

STUDENT_CODE_PREFIX = 'STU_'
PARENT_CODE_PREFIX = 'QR_'
PARENT_CODE_LENGTH = 8

# [0-9] rather than \d: \d also accepts non-ASCII digits
STUDENT_CODE_PATTERN = re.compile(r'STU_([a-f0-9-]+)_[0-9]+')
PARENT_CODE_PATTERN = re.compile(r'QR_[A-Z0-9]{8}')

_PARENT_CODE_ALPHABET = string.ascii_uppercase + string.digits

KIND_STUDENT = 'student'
KIND_PARENT = 'parent'


@dataclass(frozen=True)
class ScannedCode:
    """A scanned payload resolved to the identity it refers to."""
    kind: str
    value: str


def extract_student_id(code) -> Optional[str]:
    """
    Extract the student id embedded in a student QR code.

    Args:
        code: Raw scanned string

    Returns:
        str: The embedded student id, or None when the code is not a
        well-formed student code
    """
    if not isinstance(code, str):
        return None
    match = STUDENT_CODE_PATTERN.fullmatch(code)
    return match.group(1) if match else None


def is_parent_code(code) -> bool:
    """Return True when ``code`` is exactly a parent QR code."""
    if not isinstance(code, str):
        return False
    return PARENT_CODE_PATTERN.fullmatch(code) is not None


def resolve_code(code) -> Optional[ScannedCode]:
    """Classify a scanned payload as a student or parent reference."""
    student_id = extract_student_id(code)
    if student_id is not None:
        return ScannedCode(kind=KIND_STUDENT, value=student_id)
    if is_parent_code(code):
        return ScannedCode(kind=KIND_PARENT, value=code)
    return None


def build_student_code(student_id: str, timestamp_ms: Optional[int] = None) -> str:
    """
    Build the payload printed on a student's ID card.

    Args:
        student_id (str): Student's internal id (lowercase uuid)
        timestamp_ms (int): Issue time in milliseconds, defaults to now

    Returns:
        str: Student QR payload
    """
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    code = f"{STUDENT_CODE_PREFIX}{student_id}_{timestamp_ms}"
    if extract_student_id(code) != student_id:
        raise ValueError(f"Student id cannot be encoded in a QR code: {student_id!r}")
    return code


def generate_parent_code() -> str:
    """Generate a fresh random parent QR payload."""
    suffix = ''.join(secrets.choice(_PARENT_CODE_ALPHABET) for _ in range(PARENT_CODE_LENGTH))
    return f"{PARENT_CODE_PREFIX}{suffix}"

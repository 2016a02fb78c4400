from datetime import datetime

import pytest

from startrak.modules.attendance_manager import AttendanceManager
from startrak.modules.attendance_store import StoreError
from startrak.modules.models import AttendanceStatus


@pytest.fixture
def manager(store, clock):
    return AttendanceManager(store, clock=clock)


@pytest.fixture
def roster(store):
    return [
        store.create_student('Emma Wilson', 'STU001'),
        store.create_student('James Rodriguez', 'STU002'),
        store.create_student('Sophia Chen', 'STU003'),
    ]


def test_populate_creates_absent_records(manager, store, roster, active_session):
    created = manager.populate_session(active_session.id, [s.id for s in roster])

    assert len(created) == 3
    assert all(record.status is AttendanceStatus.ABSENT for record in created)
    assert all(record.check_in_time is None for record in created)


def test_populate_skips_students_that_already_have_a_record(manager, store, roster, active_session):
    manager.populate_session(active_session.id, [roster[0].id])

    created = manager.populate_session(active_session.id, [s.id for s in roster])

    assert {record.student_id for record in created} == {roster[1].id, roster[2].id}
    assert len(store.list_session_attendance(active_session.id)) == 3


def test_populate_rejects_unknown_students(manager, active_session):
    with pytest.raises(StoreError):
        manager.populate_session(active_session.id, ['no-such-student'])


def test_advance_stamps_one_timestamp_per_step(manager, store, student, active_session):
    record = manager.populate_session(active_session.id, [student.id])[0]

    checked_in = manager.advance_attendance(record.id)
    assert checked_in.status is AttendanceStatus.CHECKED_IN
    assert checked_in.check_in_time == datetime(2025, 9, 15, 9, 0)
    assert checked_in.learning_start_time is None

    learning = manager.advance_attendance(record.id)
    assert learning.status is AttendanceStatus.LEARNING
    assert learning.check_in_time == datetime(2025, 9, 15, 9, 0)
    assert learning.learning_start_time == datetime(2025, 9, 15, 9, 1)
    assert learning.check_out_time is None

    completed = manager.advance_attendance(record.id, changed_by='staff')
    assert completed.status is AttendanceStatus.COMPLETED
    assert completed.learning_start_time == datetime(2025, 9, 15, 9, 1)
    assert completed.check_out_time == datetime(2025, 9, 15, 9, 2)


def test_advancing_completed_record_changes_nothing(manager, store, student, active_session, notifier):
    record = manager.populate_session(active_session.id, [student.id])[0]
    for _ in range(3):
        manager.advance_attendance(record.id)
    events = []
    notifier.subscribe(events.append)

    again = manager.advance_attendance(record.id)

    assert again == store.get_attendance_record(record.id)
    assert again.status is AttendanceStatus.COMPLETED
    assert events == []


def test_advance_unknown_record(manager):
    assert manager.advance_attendance('no-such-record') is None


def test_session_attendance_listing_and_stats(manager, store, roster, active_session):
    records = manager.populate_session(active_session.id, [s.id for s in roster])
    manager.advance_attendance(records[0].id)
    manager.advance_attendance(records[1].id)
    manager.advance_attendance(records[1].id)

    result = manager.get_session_attendance(active_session.id)

    assert result['session_id'] == active_session.id
    assert [r['student_name'] for r in result['records']] == ['Emma Wilson', 'James Rodriguez', 'Sophia Chen']
    assert result['stats'] == {
        'total_students': 3,
        'absent': 1,
        'checked_in': 1,
        'learning': 1,
        'completed': 0
    }


def test_summarize_counts_statuses():
    stats = AttendanceManager.summarize([
        AttendanceStatus.COMPLETED, AttendanceStatus.COMPLETED, AttendanceStatus.ABSENT
    ])

    assert stats.total_students == 3
    assert stats.completed == 2
    assert stats.absent == 1

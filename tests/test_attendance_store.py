from datetime import datetime

import pytest

from startrak.modules.attendance_store import (
    AmbiguousSessionError, DuplicateRecordError, StoreUnavailableError
)
from startrak.modules.audit_manager import AuditManager
from startrak.modules.models import AttendanceRecord, AttendanceStatus, SessionStatus, transition_patch


def _checked_in(student, session):
    return AttendanceRecord(
        id=None,
        student_id=student.id,
        session_id=session.id,
        status=AttendanceStatus.CHECKED_IN,
        check_in_time=datetime(2025, 9, 15, 9, 0)
    )


def test_insert_and_read_back(store, student, active_session):
    inserted = store.insert_attendance_record(_checked_in(student, active_session))

    assert inserted.id
    assert store.get_attendance_record(inserted.id) == inserted
    assert store.find_attendance_record(student.id, active_session.id) == inserted


def test_second_record_for_same_pair_is_rejected(store, student, active_session):
    store.insert_attendance_record(_checked_in(student, active_session))

    with pytest.raises(DuplicateRecordError):
        store.insert_attendance_record(_checked_in(student, active_session))


def test_conditional_update_applies_when_status_matches(store, student, active_session):
    record = store.insert_attendance_record(_checked_in(student, active_session))
    now = datetime(2025, 9, 15, 9, 10)

    updated = store.conditional_update_attendance_record(
        record.id, AttendanceStatus.CHECKED_IN, transition_patch(AttendanceStatus.LEARNING, now)
    )

    assert updated.status is AttendanceStatus.LEARNING
    assert updated.learning_start_time == now
    assert updated.check_in_time == record.check_in_time


def test_conditional_update_conflict_leaves_record_untouched(store, student, active_session, notifier):
    record = store.insert_attendance_record(_checked_in(student, active_session))
    events = []
    notifier.subscribe(events.append)

    result = store.conditional_update_attendance_record(
        record.id, AttendanceStatus.ABSENT,
        transition_patch(AttendanceStatus.CHECKED_IN, datetime(2025, 9, 15, 10, 0))
    )

    assert result is None
    assert store.get_attendance_record(record.id) == record
    assert events == []


def test_conditional_update_on_missing_record(store):
    assert store.conditional_update_attendance_record(
        'no-such-record', AttendanceStatus.ABSENT, {'status': AttendanceStatus.CHECKED_IN}
    ) is None


def test_conditional_update_refuses_unknown_columns(store, student, active_session):
    record = store.insert_attendance_record(_checked_in(student, active_session))

    with pytest.raises(ValueError):
        store.conditional_update_attendance_record(record.id, AttendanceStatus.CHECKED_IN, {'student_id': 'x'})


def test_writes_are_audited_in_order(store, db_manager, student, active_session):
    record = store.insert_attendance_record(_checked_in(student, active_session), changed_by='kiosk')
    store.conditional_update_attendance_record(
        record.id, AttendanceStatus.CHECKED_IN,
        transition_patch(AttendanceStatus.LEARNING, datetime(2025, 9, 15, 9, 5)),
        changed_by='staff'
    )

    logs = AuditManager(db_manager).get_audit_logs(table_name='attendance_records')

    assert logs['total'] == 2
    assert [item['action'] for item in logs['items']] == ['UPDATE', 'INSERT']
    update, insert = logs['items']
    assert update['changed_by'] == 'staff'
    assert update['old_values'] == {'status': 'checked-in', 'learning_start_time': None}
    assert update['new_values'] == {'status': 'learning', 'learning_start_time': '2025-09-15T09:05:00'}
    assert insert['old_values'] is None
    assert insert['new_values']['status'] == 'checked-in'


def test_audit_log_pagination(store, db_manager, active_session):
    students = [store.create_student(f'Student {n}', f'STU10{n}') for n in range(5)]
    store.insert_absent_records(active_session.id, [s.id for s in students])

    page = AuditManager(db_manager).get_audit_logs(page=2, per_page=2)

    assert page['total'] == 5
    assert page['pages'] == 3
    assert len(page['items']) == 2


def test_committed_writes_are_published(store, student, active_session, notifier):
    events = []
    notifier.subscribe(events.append)

    record = store.insert_attendance_record(_checked_in(student, active_session))
    store.conditional_update_attendance_record(
        record.id, AttendanceStatus.CHECKED_IN,
        transition_patch(AttendanceStatus.LEARNING, datetime(2025, 9, 15, 9, 5))
    )

    assert [(e.event, e.table) for e in events] == [
        ('INSERT', 'attendance_records'), ('UPDATE', 'attendance_records')
    ]
    assert events[1].record['status'] == 'learning'


def test_several_active_sessions_are_ambiguous(store, active_session):
    store.create_session('Data Structures & Algorithms', status=SessionStatus.ACTIVE)

    with pytest.raises(AmbiguousSessionError):
        store.find_active_session()


def test_session_status_update(store, active_session):
    completed = store.update_session_status(active_session.id, 'completed')

    assert completed.status is SessionStatus.COMPLETED
    assert store.find_active_session() is None
    assert store.update_session_status('no-such-session', SessionStatus.ACTIVE) is None


def test_parent_links_are_replaced(store, student, parent):
    other = store.create_student('Sophia Chen', 'STU003')

    store.link_parent_to_students(parent.id, [other.id])

    assert store.is_parent_authorized_for_student(parent.id, other.id)
    assert not store.is_parent_authorized_for_student(parent.id, student.id)


def test_parent_qr_code_update(store, parent):
    updated = store.update_parent_qr_code(parent.id, 'QR_NEWCODE1')

    assert updated.qr_code == 'QR_NEWCODE1'
    assert store.find_parent_by_qr_code('QR_WILSON01') is None
    assert store.find_parent_by_qr_code('QR_NEWCODE1').id == parent.id


def test_database_errors_surface_as_unavailable(store, db_manager, student):
    db_manager.execute_update("DROP TABLE student_parent_links")

    with pytest.raises(StoreUnavailableError):
        store.is_parent_authorized_for_student('p-1', student.id)

import pytest

from startrak.modules.checkin_manager import CheckInManager
from startrak.modules.models import ResultStatus
from startrak.modules.qr_resolver import build_student_code
from startrak.routes import http_status_for

from tests.conftest import login
from tests.fakes import UnavailableStore


def _seeded(app, query, params=()):
    return app.extensions['startrak']['db'].execute_query(query, params, fetch_all=False)


@pytest.fixture
def emma_id(app):
    return _seeded(app, "SELECT id FROM students WHERE student_code = 'STU001'")['id']


@pytest.fixture
def sophia_id(app):
    return _seeded(app, "SELECT id FROM students WHERE student_code = 'STU003'")['id']


@pytest.fixture
def admin_client(client):
    assert login(client).status_code == 200
    return client


@pytest.fixture
def staff_client(client):
    assert login(client, 'staff', 'staff123').status_code == 200
    return client


@pytest.mark.parametrize('status,code', [
    (ResultStatus.SUCCESS, 200),
    (ResultStatus.ALREADY_CHECKED_IN, 200),
    (ResultStatus.STUDENT_NOT_FOUND, 404),
    (ResultStatus.NOT_AUTHORIZED, 403),
    (ResultStatus.STORE_UNAVAILABLE, 503),
    (ResultStatus.INVALID_CODE, 400),
    (ResultStatus.NO_ACTIVE_SESSION, 400),
    (ResultStatus.ERROR, 400),
])
def test_result_status_http_codes(status, code):
    assert http_status_for(status) == code


def test_check_in_and_duplicate_scan(client, emma_id):
    code = build_student_code(emma_id)

    first = client.post('/api/check-in', json={'qr_code': code})
    second = client.post('/api/check-in', json={'qr_code': code})

    assert first.status_code == 200
    assert first.get_json()['status'] == 'success'
    assert first.get_json()['student_name'] == 'Emma Wilson'
    assert second.status_code == 200
    assert second.get_json()['status'] == 'already-checked-in'
    assert second.get_json()['severity'] == 'warning'

    recent = client.get('/api/check-in/recent').get_json()['entries']
    assert [entry['status'] for entry in recent] == ['already-checked-in', 'success']


def test_check_in_rejections(client):
    missing = client.post('/api/check-in', json={})
    invalid = client.post('/api/check-in', json={'qr_code': 'hello'})
    unknown = client.post('/api/check-in',
                          json={'qr_code': build_student_code('0b7d6c4e-0000-4000-8000-000000000000')})

    assert missing.status_code == 400
    assert invalid.status_code == 400
    assert invalid.get_json()['status'] == 'invalid-code'
    assert unknown.status_code == 404
    assert unknown.get_json()['status'] == 'student-not-found'


def test_check_in_store_unavailable(app, client, emma_id):
    app.extensions['startrak']['checkin'] = CheckInManager(UnavailableStore())

    response = client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})

    assert response.status_code == 503
    assert response.get_json()['status'] == 'store-unavailable'


def test_parent_check_out(client, emma_id, sophia_id):
    client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})

    allowed = client.post('/api/check-out', json={'parent_qr_code': 'QR_WILSON01', 'student_id': emma_id})
    refused = client.post('/api/check-out', json={'parent_qr_code': 'QR_WILSON01', 'student_id': sophia_id})
    incomplete = client.post('/api/check-out', json={'parent_qr_code': 'QR_WILSON01'})

    assert allowed.status_code == 200
    assert allowed.get_json()['attendance_record']['status'] == 'completed'
    assert refused.status_code == 403
    assert refused.get_json()['status'] == 'not-authorized'
    assert incomplete.status_code == 400


def test_login_and_logout(client):
    assert login(client, 'admin', 'wrong').status_code == 401

    response = login(client)
    assert response.get_json()['user']['role'] == 'admin'

    assert client.post('/api/logout').status_code == 200
    assert client.get('/api/sessions/active').status_code == 401


def test_dashboard_routes_require_login(client):
    assert client.get('/api/sessions/active').status_code == 401
    assert client.post('/api/attendance/some-record/advance').status_code == 401
    assert client.get('/api/audit-logs').status_code == 401


def test_active_session_and_attendance(admin_client, emma_id):
    active = admin_client.get('/api/sessions/active').get_json()['session']
    assert active['name'] == 'Advanced JavaScript Concepts'

    admin_client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})
    attendance = admin_client.get(f"/api/sessions/{active['id']}/attendance").get_json()

    assert attendance['stats']['checked_in'] == 1
    assert attendance['records'][0]['student_name'] == 'Emma Wilson'
    assert admin_client.get('/api/sessions/no-such-session/attendance').status_code == 404


def test_populate_and_advance(staff_client, emma_id, sophia_id):
    session_id = staff_client.get('/api/sessions/active').get_json()['session']['id']

    populated = staff_client.post(f'/api/sessions/{session_id}/populate',
                                  json={'student_ids': [emma_id, sophia_id]}).get_json()
    assert populated['created'] == 2

    record_id = populated['records'][0]['id']
    advanced = staff_client.post(f'/api/attendance/{record_id}/advance').get_json()
    assert advanced['attendance_record']['status'] == 'checked-in'

    assert staff_client.post('/api/attendance/no-such-record/advance').status_code == 404
    assert staff_client.post(f'/api/sessions/{session_id}/populate', json={'student_ids': 'all'}).status_code == 400
    assert staff_client.post(f'/api/sessions/{session_id}/populate',
                             json={'student_ids': ['no-such-student']}).status_code == 400


def test_session_status_change(staff_client):
    session_id = staff_client.get('/api/sessions/active').get_json()['session']['id']

    bad = staff_client.post(f'/api/sessions/{session_id}/status', json={'status': 'paused'})
    done = staff_client.post(f'/api/sessions/{session_id}/status', json={'status': 'completed'})

    assert bad.status_code == 400
    assert done.get_json()['session']['status'] == 'completed'
    assert staff_client.get('/api/sessions/active').get_json()['session'] is None


def test_attendance_export(staff_client, emma_id):
    staff_client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})
    session_id = staff_client.get('/api/sessions/active').get_json()['session']['id']

    response = staff_client.get(f'/api/sessions/{session_id}/attendance/export?format=csv')

    assert response.status_code == 200
    assert response.mimetype == 'text/csv'
    assert 'Emma Wilson' in response.get_data(as_text=True)
    assert staff_client.get(f'/api/sessions/{session_id}/attendance/export?format=pdf').status_code == 400


def test_student_qr_code(staff_client, emma_id):
    data = staff_client.get(f'/api/students/{emma_id}/qr').get_json()

    assert data['qr_code']['qr_data'].startswith(f'STU_{emma_id}_')
    assert data['qr_code']['image_base64']
    assert staff_client.get('/api/students/no-such-student/qr').status_code == 404


def test_parent_management_requires_admin(staff_client, app):
    parent_id = _seeded(app, "SELECT id FROM parents WHERE qr_code = 'QR_WILSON01'")['id']

    assert staff_client.post(f'/api/parents/{parent_id}/qr').status_code == 403
    assert staff_client.get('/api/audit-logs').status_code == 403


def test_regenerated_parent_code_replaces_old_one(admin_client, app, emma_id):
    parent_id = _seeded(app, "SELECT id FROM parents WHERE qr_code = 'QR_WILSON01'")['id']
    admin_client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})

    data = admin_client.post(f'/api/parents/{parent_id}/qr').get_json()
    new_code = data['parent']['qr_code']

    assert new_code != 'QR_WILSON01'
    assert data['qr_code']['qr_data'] == new_code
    old = admin_client.post('/api/check-out', json={'parent_qr_code': 'QR_WILSON01', 'student_id': emma_id})
    assert old.get_json()['status'] == 'invalid-code'
    new = admin_client.post('/api/check-out', json={'parent_qr_code': new_code, 'student_id': emma_id})
    assert new.get_json()['status'] == 'success'


def test_parent_links_replacement(admin_client, app, emma_id, sophia_id):
    parent_id = _seeded(app, "SELECT id FROM parents WHERE qr_code = 'QR_WILSON01'")['id']

    response = admin_client.put(f'/api/parents/{parent_id}/students', json={'student_ids': [sophia_id]})

    assert response.get_json()['student_ids'] == [sophia_id]
    refused = admin_client.post('/api/check-out', json={'parent_qr_code': 'QR_WILSON01', 'student_id': emma_id})
    assert refused.status_code == 403
    assert admin_client.put('/api/parents/no-such-parent/students',
                            json={'student_ids': []}).status_code == 404


def test_audit_log_viewer(admin_client, emma_id):
    admin_client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})

    logs = admin_client.get('/api/audit-logs?table=attendance_records').get_json()

    assert logs['total'] == 1
    assert logs['items'][0]['action'] == 'INSERT'
    assert logs['items'][0]['new_values']['status'] == 'checked-in'


@pytest.mark.parametrize('suffix', ['\n', ' ', '\t'])
def test_check_in_code_with_trailing_whitespace_is_invalid(client, emma_id, suffix):
    response = client.post('/api/check-in', json={'qr_code': build_student_code(emma_id) + suffix})

    assert response.status_code == 400
    assert response.get_json()['status'] == 'invalid-code'
    attendance = _seeded(app=client.application,
                         query="SELECT COUNT(*) AS count FROM attendance_records")
    assert attendance['count'] == 0


def test_check_out_parent_code_with_trailing_whitespace_is_invalid(client, emma_id):
    client.post('/api/check-in', json={'qr_code': build_student_code(emma_id)})

    response = client.post('/api/check-out', json={'parent_qr_code': 'QR_WILSON01\n', 'student_id': emma_id})

    assert response.status_code == 400
    assert response.get_json()['status'] == 'invalid-code'

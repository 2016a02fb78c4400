"""
JSON API routes for the StarTrak attendance system.

Kiosk endpoints (check-in, check-out, recent activity) are open; dashboard
endpoints require a staff login and a few require the admin role.
Components are built by the application factory and read from
``current_app.extensions['startrak']``.
"""

import io
import logging
from functools import wraps
from queue import Empty

from flask import Blueprint, Response, current_app, jsonify, request, send_file, session

from startrak.modules.attendance_store import AmbiguousSessionError, StoreError, StoreUnavailableError
from startrak.modules.models import ResultStatus, SessionStatus
from startrak.modules.qr_resolver import generate_parent_code

logger = logging.getLogger(__name__)

api = Blueprint('api', __name__, url_prefix='/api')

HTTP_STATUS_CODES = {
    ResultStatus.SUCCESS: 200,
    ResultStatus.ALREADY_CHECKED_IN: 200,
    ResultStatus.STUDENT_NOT_FOUND: 404,
    ResultStatus.NOT_AUTHORIZED: 403,
    ResultStatus.STORE_UNAVAILABLE: 503
}


def http_status_for(status: ResultStatus) -> int:
    return HTTP_STATUS_CODES.get(status, 400)


def _component(name):
    return current_app.extensions['startrak'][name]


def _error(message, code):
    return jsonify({'success': False, 'message': message}), code


def _store_unavailable():
    return _error('Attendance service is unavailable, please try again', 503)


def login_required(f):
    """Decorator to require a staff login for protected routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return _error('Login required', 401)
        return f(*args, **kwargs)
    return decorated_function


def admin_required(f):
    """Decorator to require admin privileges for protected routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if 'user_id' not in session:
            return _error('Login required', 401)
        if session.get('role') != 'admin':
            return _error('Admin privileges required', 403)
        return f(*args, **kwargs)
    return decorated_function


# Authentication

@api.route('/login', methods=['POST'])
def login():
    """Staff login"""
    try:
        data = request.get_json(silent=True) or {}
        username = str(data.get('username') or '').strip()
        password = str(data.get('password') or '')

        if not username or not password:
            return _error('Please provide both username and password', 400)

        user = _component('auth').authenticate_user(username, password)
        if not user:
            return _error('Invalid username or password', 401)

        session.clear()
        session['user_id'] = user['id']
        session['username'] = user['username']
        session['role'] = user['role']
        session['full_name'] = user['full_name']

        logger.info(f"User {username} logged in successfully")
        return jsonify({'success': True, 'user': user})

    except Exception as e:
        logger.error(f"Login error: {str(e)}")
        return _error('An error occurred during login', 500)


@api.route('/logout', methods=['POST'])
@login_required
def logout():
    username = session.get('username')
    session.clear()
    logger.info(f"User {username} logged out")
    return jsonify({'success': True, 'message': 'You have been logged out'})


# Kiosk scanning

@api.route('/check-in', methods=['POST'])
def check_in():
    """Process a student QR code scan"""
    try:
        data = request.get_json(silent=True) or {}
        qr_code = data.get('qr_code')

        if not isinstance(qr_code, str) or not qr_code:
            return _error('No QR code data provided', 400)

        result = _component('checkin').process_check_in(qr_code)
        payload = result.to_dict()
        _component('recent').append(payload)

        return jsonify(payload), http_status_for(result.status)

    except Exception as e:
        logger.error(f"Check-in processing error: {str(e)}")
        return _error('An error occurred while processing the scan', 500)


@api.route('/check-in/recent', methods=['GET'])
def recent_check_ins():
    """Most recent scan outcomes, newest first"""
    recent = _component('recent')
    return jsonify({'success': True, 'entries': recent.entries()})


@api.route('/check-out', methods=['POST'])
def check_out():
    """Process a parent QR code scan for one student"""
    try:
        data = request.get_json(silent=True) or {}
        parent_qr_code = data.get('parent_qr_code')
        student_id = data.get('student_id')

        if not isinstance(parent_qr_code, str) or not parent_qr_code:
            return _error('No parent QR code provided', 400)
        if not isinstance(student_id, str) or not student_id:
            return _error('No student specified', 400)

        result = _component('checkout').process_check_out(parent_qr_code, student_id)
        return jsonify(result.to_dict()), http_status_for(result.status)

    except Exception as e:
        logger.error(f"Check-out processing error: {str(e)}")
        return _error('An error occurred while processing the checkout', 500)


# Sessions

@api.route('/sessions/active', methods=['GET'])
@login_required
def active_session():
    try:
        current = _component('store').find_active_session()
        return jsonify({'success': True, 'session': current.to_dict() if current else None})

    except AmbiguousSessionError:
        return _error('More than one session is active', 400)
    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Active session lookup error: {str(e)}")
        return _error('An error occurred while loading the active session', 500)


@api.route('/sessions/<session_id>/status', methods=['POST'])
@login_required
def update_session_status(session_id):
    """Activate or complete a session"""
    try:
        data = request.get_json(silent=True) or {}
        try:
            status = SessionStatus(data.get('status'))
        except ValueError:
            return _error(f"Invalid session status: {data.get('status')}", 400)

        updated = _component('store').update_session_status(session_id, status)
        if updated is None:
            return _error('Session not found', 404)

        logger.info(f"Session {session_id} set to {status.value} by {session.get('username')}")
        return jsonify({'success': True, 'session': updated.to_dict()})

    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Session status update error: {str(e)}")
        return _error('An error occurred while updating the session', 500)


@api.route('/sessions/<session_id>/populate', methods=['POST'])
@login_required
def populate_session(session_id):
    """Create absent records for the students enrolled in a session"""
    try:
        data = request.get_json(silent=True) or {}
        student_ids = data.get('student_ids')

        if not isinstance(student_ids, list) or not all(isinstance(item, str) for item in student_ids):
            return _error('student_ids must be a list of student ids', 400)

        if _component('store').get_session(session_id) is None:
            return _error('Session not found', 404)

        created = _component('attendance').populate_session(
            session_id, student_ids, changed_by=session.get('username')
        )
        return jsonify({
            'success': True,
            'created': len(created),
            'records': [record.to_dict() for record in created]
        })

    except StoreUnavailableError:
        return _store_unavailable()
    except StoreError as e:
        logger.warning(f"Session population rejected: {str(e)}")
        return _error('Unknown student in enrollment list', 400)
    except Exception as e:
        logger.error(f"Session population error: {str(e)}")
        return _error('An error occurred while populating the session', 500)


@api.route('/sessions/<session_id>/attendance', methods=['GET'])
@login_required
def session_attendance(session_id):
    try:
        if _component('store').get_session(session_id) is None:
            return _error('Session not found', 404)

        result = _component('attendance').get_session_attendance(session_id)
        result['success'] = True
        return jsonify(result)

    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Session attendance error: {str(e)}")
        return _error('An error occurred while loading attendance', 500)


@api.route('/sessions/<session_id>/attendance/export', methods=['GET'])
@login_required
def export_session_attendance(session_id):
    """Download a session's attendance sheet as CSV or Excel"""
    try:
        output_format = request.args.get('format', 'csv')
        result = _component('reports').export_session_attendance(session_id, output_format)

        if not result['success']:
            code = 404 if result['error'] == 'Session not found' else 400
            return _error(result['error'], code)

        return send_file(
            io.BytesIO(result['content']),
            mimetype=result['mimetype'],
            as_attachment=True,
            download_name=result['filename']
        )

    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Attendance export error: {str(e)}")
        return _error('An error occurred while exporting attendance', 500)


# Attendance records

@api.route('/attendance/<record_id>/advance', methods=['POST'])
@login_required
def advance_attendance(record_id):
    """Move a record one step along absent -> checked-in -> learning -> completed"""
    try:
        record = _component('attendance').advance_attendance(record_id, changed_by=session.get('username'))
        if record is None:
            return _error('Attendance record not found', 404)

        return jsonify({'success': True, 'attendance_record': record.to_dict()})

    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Attendance advancement error: {str(e)}")
        return _error('An error occurred while updating attendance', 500)


@api.route('/attendance/stream', methods=['GET'])
@login_required
def attendance_stream():
    """Server-Sent Events feed of attendance changes"""
    notifier = _component('notifier')
    keepalive = current_app.config['NOTIFICATIONS_STREAM_KEEPALIVE']
    token, stream = notifier.open_stream()

    def generate():
        try:
            yield ': connected\n\n'
            while True:
                try:
                    event = stream.get(timeout=keepalive)
                except Empty:
                    yield ': keepalive\n\n'
                    continue
                yield event.to_sse()
        finally:
            notifier.unsubscribe(token)

    return Response(
        generate(),
        mimetype='text/event-stream',
        headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'}
    )


# QR codes and parents

@api.route('/students/<student_id>/qr', methods=['GET'])
@login_required
def student_qr_code(student_id):
    """Issue a fresh check-in QR code for a student"""
    try:
        student = _component('store').find_student_by_id(student_id)
        if student is None:
            return _error('Student not found', 404)

        qr_data = _component('qr').generate_student_qr_code(student)
        return jsonify({'success': True, 'student': student.to_dict(), 'qr_code': qr_data})

    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Student QR code error: {str(e)}")
        return _error('An error occurred while generating the QR code', 500)


@api.route('/parents/<parent_id>/qr', methods=['POST'])
@admin_required
def regenerate_parent_qr_code(parent_id):
    """Replace a parent's checkout code; the old code stops working"""
    try:
        parent = _component('store').update_parent_qr_code(parent_id, generate_parent_code())
        if parent is None:
            return _error('Parent not found', 404)

        logger.info(f"Parent {parent_id} QR code regenerated by {session.get('username')}")
        qr_data = _component('qr').generate_parent_qr_code(parent)
        return jsonify({'success': True, 'parent': parent.to_dict(), 'qr_code': qr_data})

    except StoreUnavailableError:
        return _store_unavailable()
    except Exception as e:
        logger.error(f"Parent QR code error: {str(e)}")
        return _error('An error occurred while regenerating the QR code', 500)


@api.route('/parents/<parent_id>/students', methods=['PUT'])
@admin_required
def link_parent_students(parent_id):
    """Replace the students a parent is authorized to check out"""
    try:
        data = request.get_json(silent=True) or {}
        student_ids = data.get('student_ids')

        if not isinstance(student_ids, list) or not all(isinstance(item, str) for item in student_ids):
            return _error('student_ids must be a list of student ids', 400)

        store = _component('store')
        if store.get_parent(parent_id) is None:
            return _error('Parent not found', 404)

        linked = store.link_parent_to_students(parent_id, student_ids)
        return jsonify({'success': True, 'parent_id': parent_id, 'student_ids': linked})

    except StoreUnavailableError:
        return _store_unavailable()
    except StoreError as e:
        logger.warning(f"Parent link replacement rejected: {str(e)}")
        return _error('Unknown student in link list', 400)
    except Exception as e:
        logger.error(f"Parent link error: {str(e)}")
        return _error('An error occurred while updating parent links', 500)


# Audit log

@api.route('/audit-logs', methods=['GET'])
@admin_required
def audit_logs():
    try:
        result = _component('audit').get_audit_logs(
            page=request.args.get('page', 1, type=int),
            per_page=request.args.get('per_page', 50, type=int),
            table_name=request.args.get('table'),
            record_id=request.args.get('record_id')
        )
        result['success'] = True
        return jsonify(result)

    except Exception as e:
        logger.error(f"Audit log error: {str(e)}")
        return _error('An error occurred while loading the audit log', 500)

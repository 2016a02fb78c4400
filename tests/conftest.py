import pytest
from datetime import datetime, timedelta

from app import create_app
from startrak.modules.attendance_store import AttendanceStore
from startrak.modules.database_manager import DatabaseManager
from startrak.modules.models import SessionStatus
from startrak.modules.notification_system import NotificationSystem


class StepClock:
    """Returns start, start + step, start + 2*step, ... on each call."""

    def __init__(self, start=datetime(2025, 9, 15, 9, 0, 0), step=timedelta(minutes=1)):
        self.current = start
        self.step = step

    def __call__(self):
        value = self.current
        self.current += self.step
        return value


@pytest.fixture
def clock():
    return StepClock()


@pytest.fixture
def db_manager(tmp_path):
    manager = DatabaseManager(tmp_path / 'startrak_test.db', timeout=5.0)
    yield manager
    manager.close_all_connections()


@pytest.fixture
def notifier():
    return NotificationSystem()


@pytest.fixture
def store(db_manager, notifier):
    return AttendanceStore(db_manager, notifier=notifier)


@pytest.fixture
def student(store):
    return store.create_student('Emma Wilson', 'STU001', email='emma.wilson@email.com')


@pytest.fixture
def active_session(store):
    return store.create_session('Advanced JavaScript Concepts', instructor='Dr. Sarah Thompson',
                                status=SessionStatus.ACTIVE)


@pytest.fixture
def parent(store, student):
    parent = store.create_parent('Laura Wilson', qr_code='QR_WILSON01')
    store.link_parent_to_students(parent.id, [student.id])
    return parent


@pytest.fixture
def app(tmp_path):
    app = create_app(
        'testing',
        DATABASE_PATH=tmp_path / 'api_test.db',
        SEED_DEFAULT_DATA=True
    )
    yield app
    app.extensions['startrak']['db'].close_all_connections()


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, username='admin', password='admin123'):
    return client.post('/api/login', json={'username': username, 'password': password})

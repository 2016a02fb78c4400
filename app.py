"""
StarTrak Attendance System - Main Application

Entry point for the StarTrak check-in service. Builds the Flask application,
wires the attendance store into the check-in, check-out and dashboard
managers, and registers the JSON API.

Features:
- Kiosk QR check-in for students
- Parent QR checkout for linked students
- Manual attendance advancement from the dashboard
- Realtime attendance feed (Server-Sent Events)
- Session attendance export to CSV/Excel
"""

import logging

from flask import Flask

from config import get_config
from startrak.modules.attendance_manager import AttendanceManager
from startrak.modules.attendance_store import AttendanceStore
from startrak.modules.audit_manager import AuditManager
from startrak.modules.auth_manager import AuthManager
from startrak.modules.checkin_manager import CheckInManager
from startrak.modules.checkout_manager import CheckOutManager
from startrak.modules.database_manager import DatabaseManager
from startrak.modules.notification_system import NotificationSystem, RecentActivityLog
from startrak.modules.qr_generator import QRGenerator
from startrak.modules.report_generator import ReportGenerator
from startrak.routes import api

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
)
logger = logging.getLogger(__name__)


def create_app(config_name=None, **overrides):
    """
    Application factory.

    Args:
        config_name (str): development, testing or production
        **overrides: Config keys to set after the config class is loaded

    Returns:
        Flask: Configured application
    """
    app = Flask(__name__)
    config_class = get_config(config_name)
    app.config.from_object(config_class)
    app.config.update(overrides)
    config_class.init_app(app)

    logging.getLogger('startrak').setLevel(app.config['LOG_LEVEL'])

    # Initialize system components
    db_manager = DatabaseManager(
        app.config['DATABASE_PATH'],
        timeout=app.config['STORE_TIMEOUT'],
        seed_default_data=app.config['SEED_DEFAULT_DATA']
    )
    notification_system = NotificationSystem(max_queue_size=app.config['NOTIFICATIONS_MAX_QUEUE_SIZE'])
    store = AttendanceStore(db_manager, notifier=notification_system)

    app.extensions['startrak'] = {
        'db': db_manager,
        'notifier': notification_system,
        'store': store,
        'checkin': CheckInManager(store),
        'checkout': CheckOutManager(store, max_attempts=app.config['CHECKOUT_MAX_ATTEMPTS']),
        'attendance': AttendanceManager(store),
        'reports': ReportGenerator(store),
        'qr': QRGenerator(
            box_size=app.config['QR_CODE_SIZE'],
            border=app.config['QR_CODE_BORDER'],
            error_correction=app.config['QR_CODE_ERROR_CORRECT']
        ),
        'audit': AuditManager(db_manager),
        'auth': AuthManager(
            db_manager,
            max_login_attempts=app.config['MAX_LOGIN_ATTEMPTS'],
            lockout_duration=app.config['LOGIN_LOCKOUT_DURATION']
        ),
        'recent': RecentActivityLog(limit=app.config['RECENT_ACTIVITY_LIMIT'])
    }

    app.register_blueprint(api)

    logger.info(f"StarTrak initialized with database {db_manager.db_path}")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=5000, threaded=True)

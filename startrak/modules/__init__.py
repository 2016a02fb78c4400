# StarTrak Attendance System - Modules Package
"""
Core business logic modules for the StarTrak attendance system.
"""

# Module descriptions
MODULES = {
    'models': 'Students, sessions, attendance records, parents and status enums',
    'qr_resolver': 'QR payload formats, parsing and issuing',
    'database_manager': 'SQLite connections and schema management',
    'attendance_store': 'Attendance data access with conditional updates',
    'checkin_manager': 'Kiosk check-in transitions',
    'checkout_manager': 'Parent checkout transitions',
    'attendance_manager': 'Manual advancement, session population and stats',
    'audit_manager': 'Attendance change history',
    'notification_system': 'Realtime change feed and recent activity',
    'qr_generator': 'QR code image rendering',
    'report_generator': 'Attendance export to CSV/Excel',
    'auth_manager': 'Staff authentication'
}


def get_module_info():
    """Get information about available modules"""
    return MODULES

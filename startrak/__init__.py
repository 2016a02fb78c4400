# StarTrak Attendance System - Application Package
"""
Main application package for the StarTrak attendance system.
This package contains the check-in/check-out engines, the attendance store
and the JSON API blueprint.
"""

__version__ = "1.0.0"
__description__ = "QR code check-in, parent checkout and attendance tracking for learning centers"

# Import core components for easy access
from .modules.database_manager import DatabaseManager
from .modules.attendance_store import AttendanceStore
from .modules.checkin_manager import CheckInManager
from .modules.checkout_manager import CheckOutManager
from .modules.attendance_manager import AttendanceManager
from .modules.qr_generator import QRGenerator
from .modules.report_generator import ReportGenerator
from .modules.notification_system import NotificationSystem
from .modules.auth_manager import AuthManager

__all__ = [
    'DatabaseManager',
    'AttendanceStore',
    'CheckInManager',
    'CheckOutManager',
    'AttendanceManager',
    'QRGenerator',
    'ReportGenerator',
    'NotificationSystem',
    'AuthManager'
]

"""
Authentication Manager Module - StarTrak Attendance System

Staff login for the dashboard. Passwords are stored as werkzeug hashes;
repeated failures lock the username out for a configurable period.

Roles:
- admin: everything, including parent QR management and the audit log
- staff: scanning, session control and attendance advancement
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from werkzeug.security import generate_password_hash, check_password_hash

from startrak.modules.database_manager import new_id

ROLE_ADMIN = 'admin'
ROLE_STAFF = 'staff'


class AuthManager:
    """
    Username/password authentication with login attempt tracking.
    """

    def __init__(self, database_manager, max_login_attempts: int = 5,
                 lockout_duration: timedelta = timedelta(minutes=15)):
        """
        Initialize the authentication manager with database connection.

        Args:
            database_manager: Database manager instance
            max_login_attempts (int): Failures before the username is locked
            lockout_duration (timedelta): How long a lockout lasts
        """
        self.db = database_manager
        self.logger = logging.getLogger(__name__)
        self.max_login_attempts = max_login_attempts
        self.lockout_duration = lockout_duration

        # Failed login attempts tracking
        self.failed_attempts = {}
        self._lock = threading.Lock()

    def authenticate_user(self, username: str, password: str) -> Optional[Dict[str, Any]]:
        """
        Authenticate user credentials.

        Args:
            username (str): Username
            password (str): Plain text password

        Returns:
            Dict[str, Any]: User information if authenticated, None otherwise
        """
        if not username or not password:
            return None

        if self.is_account_locked(username):
            self.logger.warning(f"Authentication refused, account locked: {username}")
            return None

        user = self.db.execute_query(
            "SELECT * FROM users WHERE username = ? AND is_active = 1",
            (username,),
            fetch_all=False
        )

        if not user or not check_password_hash(user['password_hash'], password):
            self._record_failed_attempt(username)
            return None

        with self._lock:
            self.failed_attempts.pop(username, None)
        self.logger.info(f"User authenticated successfully: {username}")
        return self._public_user(user)

    def get_user_by_id(self, user_id: str) -> Optional[Dict[str, Any]]:
        user = self.db.execute_query(
            "SELECT * FROM users WHERE id = ? AND is_active = 1",
            (user_id,),
            fetch_all=False
        )
        return self._public_user(user) if user else None

    def create_user(self, username: str, password: str, full_name: str,
                    email: Optional[str] = None, role: str = ROLE_STAFF) -> Dict[str, Any]:
        """
        Create a staff account.

        Returns:
            Dict[str, Any]: The new user, without the password hash
        """
        if role not in (ROLE_ADMIN, ROLE_STAFF):
            raise ValueError(f"Unknown role: {role}")

        user_id = new_id()
        self.db.execute_update(
            """INSERT INTO users (id, username, password_hash, full_name, email, role)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (user_id, username, generate_password_hash(password), full_name, email, role)
        )
        self.logger.info(f"User created: {username} ({role})")
        return self.get_user_by_id(user_id)

    def is_account_locked(self, username: str) -> bool:
        """
        Check if account is locked due to failed login attempts.
        An expired lockout is cleared.
        """
        with self._lock:
            attempt_data = self.failed_attempts.get(username)
            if attempt_data is None:
                return False

            if self._is_expired(attempt_data, datetime.now()):
                del self.failed_attempts[username]
                return False

            return attempt_data['count'] >= self.max_login_attempts

    def _is_expired(self, attempt_data, now) -> bool:
        return now - attempt_data['last_attempt'] > self.lockout_duration

    def _record_failed_attempt(self, username: str) -> None:
        now = datetime.now()
        with self._lock:
            # Drop usernames whose lockout window has passed
            expired = [name for name, data in self.failed_attempts.items() if self._is_expired(data, now)]
            for name in expired:
                del self.failed_attempts[name]

            attempt_data = self.failed_attempts.setdefault(username, {'count': 0, 'last_attempt': now})
            attempt_data['count'] += 1
            attempt_data['last_attempt'] = now
            count = attempt_data['count']

        self.logger.warning(f"Failed login attempt {count} for {username}")

    @staticmethod
    def _public_user(user: Dict[str, Any]) -> Dict[str, Any]:
        return {
            'id': user['id'],
            'username': user['username'],
            'full_name': user['full_name'],
            'email': user['email'],
            'role': user['role']
        }

# StarTrak Attendance Configuration

import os
from datetime import timedelta
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _env_flag(name, default='False'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'startrak-secret-key-change-me'

    # Attendance store (SQLite)
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'startrak.db')
    STORE_TIMEOUT = float(os.environ.get('STORE_TIMEOUT') or 30.0)  # seconds
    SEED_DEFAULT_DATA = _env_flag('SEED_DEFAULT_DATA', 'True')

    # Check-in / check-out behaviour
    RECENT_ACTIVITY_LIMIT = 5
    CHECKOUT_MAX_ATTEMPTS = 3

    # QR Code Configuration
    QR_CODE_SIZE = 10
    QR_CODE_BORDER = 4
    QR_CODE_ERROR_CORRECT = 'M'  # Medium error correction

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = False  # Set to True in production with HTTPS
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Security Configuration
    MAX_LOGIN_ATTEMPTS = 5
    LOGIN_LOCKOUT_DURATION = timedelta(minutes=15)

    # Notification Configuration
    NOTIFICATIONS_MAX_QUEUE_SIZE = 1000
    NOTIFICATIONS_STREAM_KEEPALIVE = 25  # seconds

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'startrak.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    DEBUG = _env_flag('DEBUG')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Create the database directory."""
        Path(app.config['DATABASE_PATH']).parent.mkdir(parents=True, exist_ok=True)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'startrak_dev.db')
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Tests point DATABASE_PATH at a temporary file
    SEED_DEFAULT_DATA = False
    STORE_TIMEOUT = 5.0
    LOGIN_LOCKOUT_DURATION = timedelta(minutes=1)


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True  # Requires HTTPS
    SEED_DEFAULT_DATA = _env_flag('SEED_DEFAULT_DATA')

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)

        import logging
        from logging.handlers import RotatingFileHandler

        if not app.debug:
            log_file = Path(app.config['LOG_FILE'])
            log_file.parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file,
                maxBytes=app.config['LOG_MAX_BYTES'],
                backupCount=app.config['LOG_BACKUP_COUNT']
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)

            # Engines and the store log through startrak.* module loggers
            startrak_logger = logging.getLogger('startrak')
            for handler in list(startrak_logger.handlers):
                if getattr(handler, 'baseFilename', None) == file_handler.baseFilename:
                    startrak_logger.removeHandler(handler)
                    handler.close()
            startrak_logger.addHandler(file_handler)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('StarTrak startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name=None):
    """Get configuration class by name, falling back to the FLASK_ENV variable"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')
    return config.get(config_name, DevelopmentConfig)

import logging
import os

import pytest
from flask import Flask

from app import create_app
from config import Config, ProductionConfig


@pytest.fixture
def startrak_logger():
    logger = logging.getLogger('startrak')
    before = list(logger.handlers)
    yield logger
    for handler in list(logger.handlers):
        if handler not in before:
            logger.removeHandler(handler)
            handler.close()


def _production_app(tmp_path):
    app = Flask(__name__)
    app.config.from_object(ProductionConfig)
    app.config.update(DATABASE_PATH=tmp_path / 'db' / 'startrak.db', LOG_FILE=tmp_path / 'logs' / 'startrak.log')
    return app


def test_init_app_creates_only_the_database_directory(tmp_path):
    app = Flask(__name__)
    app.config.from_object(Config)
    app.config.update(DATABASE_PATH=tmp_path / 'db' / 'startrak.db')

    Config.init_app(app)

    assert (tmp_path / 'db').is_dir()
    assert 'EXPORTS_FOLDER' not in app.config


def test_production_log_file_receives_engine_logs(tmp_path, startrak_logger):
    app = _production_app(tmp_path)

    ProductionConfig.init_app(app)
    startrak_logger.setLevel(logging.INFO)
    logging.getLogger('startrak.modules.checkin_manager').info('Checked in STU001 for session s-1')
    for handler in startrak_logger.handlers:
        handler.flush()

    content = (tmp_path / 'logs' / 'startrak.log').read_text()
    assert 'Checked in STU001 for session s-1' in content


def test_production_log_handler_is_not_duplicated(tmp_path, startrak_logger):
    ProductionConfig.init_app(_production_app(tmp_path))
    ProductionConfig.init_app(_production_app(tmp_path))

    log_file = os.path.abspath(tmp_path / 'logs' / 'startrak.log')
    matching = [h for h in startrak_logger.handlers if getattr(h, 'baseFilename', None) == log_file]
    assert len(matching) == 1


def test_testing_app_has_no_file_handler(tmp_path, startrak_logger):
    create_app('testing', DATABASE_PATH=tmp_path / 'startrak.db').extensions['startrak']['db'].close_all_connections()

    assert not [h for h in startrak_logger.handlers if getattr(h, 'baseFilename', None)]

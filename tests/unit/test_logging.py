"""
Unit tests for the structured log formatter and logger setup.
"""

import io
import json
import logging

import pytest

from docbook.config import StructuredFormatter, configure_from_settings, configure_logger, load_settings


def make_record(msg='Database query executed', args=(), **extra):
    record = logging.LogRecord(
        'docbook.storage.sql_executor', logging.DEBUG, __file__, 10, msg, args, None
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture
def isolated_logger():
    logger = logging.getLogger('docbook.test_logging')
    logger.propagate = False
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


class TestStructuredFormatter:

    def test_text_appends_context(self):
        formatter = StructuredFormatter()
        record = make_record(query='SELECT 1', duration_ms=0.42)

        line = formatter.format(record)

        assert '[docbook.storage.sql_executor] [DEBUG] Database query executed' in line
        assert "query='SELECT 1'" in line
        assert 'duration_ms=0.42' in line

    def test_text_without_context(self):
        line = StructuredFormatter().format(make_record('Found %d pending migrations', (2,)))

        assert line.endswith('Found 2 pending migrations')

    def test_json(self):
        formatter = StructuredFormatter(json_format=True)
        record = make_record(query='SELECT $1', params=['x'], row_count=1)

        payload = json.loads(formatter.format(record))

        assert payload['level'] == 'debug'
        assert payload['logger'] == 'docbook.storage.sql_executor'
        assert payload['msg'] == 'Database query executed'
        assert payload['query'] == 'SELECT $1'
        assert payload['params'] == ['x']
        assert payload['row_count'] == 1

    def test_json_non_serializable_values(self):
        formatter = StructuredFormatter(json_format=True)

        payload = json.loads(formatter.format(make_record(when=object())))

        assert payload['when'].startswith('<object object')

    def test_context_skips_standard_attributes(self):
        context = StructuredFormatter.context(make_record(error='boom'))

        assert context == {'error': 'boom'}


class TestConfigureLogger:

    def test_stream_handler(self, isolated_logger):
        stream = io.StringIO()

        configure_logger(isolated_logger, log_file=stream, log_level=logging.DEBUG)
        isolated_logger.debug('Migration completed: %s', '0001_init.sql', extra={'duration_ms': 3.0})

        output = stream.getvalue()
        assert 'Migration completed: 0001_init.sql' in output
        assert 'duration_ms=3.0' in output

    def test_file_handler(self, isolated_logger, tmp_path):
        log_file = tmp_path / 'docbook.log'

        configure_logger(isolated_logger, log_file=str(log_file), log_level=logging.INFO)
        isolated_logger.info('Database pool closed')
        for handler in isolated_logger.handlers:
            handler.flush()

        assert 'Database pool closed' in log_file.read_text(encoding='utf-8')

    def test_level_filters(self, isolated_logger):
        stream = io.StringIO()

        configure_logger(isolated_logger, log_file=stream, log_level=logging.WARNING)
        isolated_logger.info('hidden')
        isolated_logger.warning('shown')

        assert 'hidden' not in stream.getvalue()
        assert 'shown' in stream.getvalue()

    def test_accepts_logger_name(self):
        logger = configure_logger('docbook.test_by_name', log_file=io.StringIO())

        try:
            assert logger is logging.getLogger('docbook.test_by_name')
            assert logger.level == logging.INFO
        finally:
            for handler in list(logger.handlers):
                logger.removeHandler(handler)

    def test_configure_from_settings(self, valid_env, tmp_path):
        valid_env.setenv('APP_ENV', 'production')
        valid_env.setenv('LOG_LEVEL', 'error')
        valid_env.setenv('LOG_FILE', str(tmp_path / 'app.log'))
        settings = load_settings(env_file=None)
        root = logging.getLogger('docbook')
        before = list(root.handlers)
        level = root.level

        logger = configure_from_settings(settings)
        try:
            assert logger is root
            assert logger.level == logging.ERROR
            added = [h for h in logger.handlers if h not in before]
            assert len(added) == 1
            assert added[0].formatter.json_format is True
        finally:
            for handler in list(root.handlers):
                if handler not in before:
                    root.removeHandler(handler)
                    handler.close()
            root.setLevel(level)

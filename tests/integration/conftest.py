"""
Shared fixtures for integration tests.

Integration tests validate multi-component workflows with minimal mocking.
Uses a real SQLite database, the shipped migrations and the real
executor, runner and repository.
"""

import logging

import pytest

from docbook.accounts.repository import AccountRepository
from docbook.config import load_settings
from docbook.migrations.migration_runner import MigrationRunner


@pytest.fixture
async def migrated_executor(executor):
    """Executor over a database with every shipped migration applied.

    Example:
        async def test_users_table(migrated_executor):
            result = await migrated_executor.execute("SELECT COUNT(*) AS n FROM users")
            assert result.first()['n'] == 0
    """
    await MigrationRunner(executor).run()
    return executor


@pytest.fixture
def accounts(migrated_executor):
    return AccountRepository(migrated_executor)


@pytest.fixture
def settings(valid_env, database_url):
    """Settings pointing at the per-test SQLite database."""
    valid_env.setenv('DATABASE_URL', database_url)
    return load_settings(env_file=None)


@pytest.fixture
def restore_app_logger():
    """Undo handlers/level that configure_from_settings puts on 'docbook'."""
    root = logging.getLogger('docbook')
    handlers = list(root.handlers)
    level = root.level
    yield root
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)

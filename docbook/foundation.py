#!/usr/bin/env python3
"""
Startup tasks: migrate the database and verify the foundation.

Each task is an ordered sequence of awaited steps. The connection pool
is created here, handed to every component that needs it, and always
shut down before returning.
"""
import logging
from typing import Any

from sqlalchemy import inspect

from docbook.accounts.passwords import hash_password, validate_password, verify_password
from docbook.config import Settings
from docbook.migrations.migration import MigrationScript, MigrationStatus
from docbook.migrations.migration_runner import MigrationRunner
from docbook.storage.pool import ConnectionPool
from docbook.storage.sql_executor import QueryExecutor


logger = logging.getLogger(__name__)

SELF_TEST_PASSWORD = 'TestPassword123'


class FoundationCheckError(Exception):
    """A foundation self-test step produced a wrong result."""
    pass


async def run_migrations(settings: Settings) -> list[MigrationScript]:
    """Apply pending migrations and return the scripts applied."""
    pool = ConnectionPool()
    try:
        pool.initialize(settings.DATABASE_URL, settings.pool_config())
        runner = MigrationRunner(QueryExecutor(pool), settings.MIGRATIONS_DIR)
        return await runner.run()
    finally:
        await pool.shutdown()


async def migration_status(settings: Settings) -> MigrationStatus:
    pool = ConnectionPool()
    try:
        pool.initialize(settings.DATABASE_URL, settings.pool_config())
        runner = MigrationRunner(QueryExecutor(pool), settings.MIGRATIONS_DIR)
        return await runner.status()
    finally:
        await pool.shutdown()


async def list_tables(pool: ConnectionPool) -> list[str]:
    """Table names in the default schema, via SQLAlchemy's inspector."""
    async with pool.get().connect() as connection:
        return await connection.run_sync(
            lambda sync_connection: sorted(inspect(sync_connection).get_table_names())
        )


async def check_foundation(settings: Settings) -> dict[str, Any]:
    """
    Verify configuration, connectivity, migrations and password utilities.

    Steps:
    1. Echo (non-secret) configuration
    2. Connect and read the server clock
    3. Run pending migrations
    4. List tables
    5. Hash and verify a known password

    Returns:
        Report dict (server_time, applied, tables)

    Raises:
        FoundationCheckError: A step returned a wrong result
        StorageError / MigrationError: Database problems
    """
    pool = ConnectionPool()

    try:
        logger.info('Step 1: environment configuration', extra=settings.summary())

        pool.initialize(settings.DATABASE_URL, settings.pool_config())
        executor = QueryExecutor(pool)

        logger.info('Step 2: database connection')
        result = await executor.execute('SELECT CURRENT_TIMESTAMP AS server_time')
        server_time = result.rows[0]['server_time']
        logger.info(
            'Database connection successful',
            extra={'dialect': pool.dialect_name, 'server_time': str(server_time)},
        )

        logger.info('Step 3: database migrations')
        applied = await MigrationRunner(executor, settings.MIGRATIONS_DIR).run()

        logger.info('Step 4: database schema')
        tables = await list_tables(pool)
        logger.info('Database tables verified', extra={'tables': tables})

        logger.info('Step 5: password utilities')
        validation = validate_password(SELF_TEST_PASSWORD)
        if not validation:
            raise FoundationCheckError(
                f"Password validation failed: {', '.join(validation.errors)}"
            )
        if not verify_password(SELF_TEST_PASSWORD, hash_password(SELF_TEST_PASSWORD)):
            raise FoundationCheckError('Password hashing/verification failed')
        logger.info('Password utilities working correctly')

        logger.info('Foundation check completed successfully')
        return {
            'server_time': server_time,
            'applied': [script.filename for script in applied],
            'tables': tables,
        }
    finally:
        await pool.shutdown()

#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Migration runner: bring the schema up to date at startup.

Applies, in ascending id order, every migration script not yet recorded
in the ``migrations`` bookkeeping table, and records each one right after
it succeeds, so an interrupted run can be resumed by running again.

Known hazard: applying a script and inserting its record are two separate
requests. If the process dies between them, the next run applies the
script again. Operators must reconcile that state by hand (inspect the
schema, then insert the missing record).
"""
import logging
import time
from pathlib import Path
from typing import List, Optional, Union

from docbook.storage.errors import MigrationError, StorageError
from docbook.storage.sql_executor import QueryExecutor

from .migration import MigrationRecord, MigrationScript, MigrationStatus
from .migration_manager import MigrationManager


logger = logging.getLogger(__name__)

DEFAULT_MIGRATIONS_DIR = Path(__file__).parent / 'sql'


class MigrationRunner:
    """
    Discovers and applies pending migrations.

    Assumes it is the only writer to the bookkeeping table while run()
    is in progress; concurrent runners against one database are not
    coordinated.

    Example:
        runner = MigrationRunner(executor)
        applied = await runner.run()
        print(f"{len(applied)} migrations applied")
    """

    TABLE_NAME = 'migrations'

    def __init__(
        self,
        executor: QueryExecutor,
        migrations_dir: Optional[Union[str, Path]] = None,
    ):
        """
        Initialize migration runner.

        Args:
            executor: QueryExecutor bound to an initialized pool
            migrations_dir: Directory of <digits>_<name>.sql scripts
                (defaults to the scripts shipped with the package)
        """
        self.executor = executor
        self.manager = MigrationManager(migrations_dir or DEFAULT_MIGRATIONS_DIR)

    async def run(self) -> List[MigrationScript]:
        """
        Apply every pending migration in ascending id order.

        Steps:
        1. Create the bookkeeping table if absent
        2. Load applied ids
        3. Discover scripts (fails before applying anything if any name
           is malformed or any id is duplicated)
        4. Apply each pending script, then record it

        Returns:
            Scripts applied by this run (empty when nothing was pending)

        Raises:
            MigrationDiscoveryError: Bad script set on disk
            MigrationError: A script or its bookkeeping insert failed;
                scripts applied earlier in this run stay recorded
        """
        logger.info('Starting database migrations...')

        try:
            await self.ensure_table()
            applied_ids = await self.applied_ids()
            scripts = self.manager.discover_migrations()
        except StorageError as e:
            logger.error('Migration failed', extra={'error': str(e)})
            raise

        pending = self.manager.pending(scripts, applied_ids)

        if not pending:
            logger.info('No pending migrations')
            return []

        logger.info(
            'Found %d pending migrations out of %d total',
            len(pending),
            len(scripts),
        )

        for script in pending:
            await self._apply(script)

        logger.info('Successfully executed %d migrations', len(pending))
        return pending

    async def ensure_table(self) -> None:
        """Create the bookkeeping table. Safe to call repeatedly."""
        await self.executor.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.TABLE_NAME} (
                id INTEGER PRIMARY KEY,
                filename VARCHAR(255) NOT NULL,
                executed_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
            )
        """)

    async def applied_ids(self) -> set[int]:
        result = await self.executor.execute(
            f"SELECT id FROM {self.TABLE_NAME} ORDER BY id"
        )
        return {int(row['id']) for row in result.rows}

    async def applied(self) -> List[MigrationRecord]:
        """Bookkeeping rows, ascending id."""
        await self.ensure_table()
        result = await self.executor.execute(
            f"SELECT id, filename, executed_at FROM {self.TABLE_NAME} ORDER BY id"
        )
        return [MigrationRecord.from_row(row) for row in result.rows]

    async def status(self) -> MigrationStatus:
        """
        Compare the bookkeeping table with the scripts on disk.

        Read-only apart from the idempotent table creation.
        """
        records = await self.applied()
        scripts = self.manager.discover_migrations()
        applied_ids = {record.id for record in records}
        script_ids = {script.id for script in scripts}

        return MigrationStatus(
            applied=records,
            pending=self.manager.pending(scripts, applied_ids),
            unknown=sorted(applied_ids - script_ids),
        )

    async def _apply(self, script: MigrationScript) -> None:
        logger.info(
            'Executing migration: %s', script.filename,
            extra={'migration_id': script.id, 'checksum': script.checksum},
        )
        start = time.perf_counter()

        try:
            await self.executor.execute_script(script.body)
        except StorageError as e:
            logger.error(
                'Migration failed',
                extra={'migration_id': script.id, 'migration_file': script.filename, 'error': str(e)},
            )
            raise MigrationError(
                f"Migration {script.filename} failed: {e}",
                details={'migration_id': script.id, 'filename': script.filename},
                original_error=e,
            ) from e

        try:
            await self.executor.execute(
                f"INSERT INTO {self.TABLE_NAME} (id, filename) VALUES ($1, $2)",
                [script.id, script.filename],
            )
        except StorageError as e:
            logger.error(
                'Migration applied but not recorded; manual reconciliation required',
                extra={'migration_id': script.id, 'migration_file': script.filename, 'error': str(e)},
            )
            raise MigrationError(
                f"Migration {script.filename} was applied but could not be recorded: {e}",
                details={'migration_id': script.id, 'filename': script.filename},
                original_error=e,
            ) from e

        logger.info(
            'Migration completed: %s', script.filename,
            extra={
                'migration_id': script.id,
                'duration_ms': round((time.perf_counter() - start) * 1000, 2),
            },
        )

"""
Transaction scope: all-or-nothing units of work on one pinned connection.

Example:
    scope = TransactionScope(executor)

    async def book(tx):
        await tx.execute("INSERT INTO slots (id, doctor_id) VALUES ($1, $2)", [slot_id, doctor_id])
        await tx.execute("UPDATE doctors SET open_slots = open_slots - 1 WHERE id = $1", [doctor_id])
        return slot_id

    slot_id = await scope.run(book)
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence, TypeVar

from sqlalchemy.ext.asyncio import AsyncConnection

from .sql_executor import QueryExecutor, QueryResult, sanitize_error, translate_error


logger = logging.getLogger(__name__)

T = TypeVar('T')


class Transaction:
    """
    Handle bound to the connection pinned for one transaction.

    Statements run in the order they are issued; no other caller uses
    the connection until the scope exits.
    """

    def __init__(self, connection: AsyncConnection, executor: QueryExecutor):
        self.connection = connection
        self._executor = executor

    async def execute(
        self,
        statement: str,
        params: Sequence[Any] = (),
    ) -> QueryResult:
        return await self._executor.execute_on(self.connection, statement, params)


class TransactionScope:
    """
    Bracket a unit of work with BEGIN / COMMIT / ROLLBACK.

    The borrowed connection goes back to the pool exactly once on every
    exit path: success, failure inside the work, failed rollback, failed
    commit.
    """

    def __init__(self, executor: QueryExecutor):
        self.executor = executor
        self.pool = executor.pool

    async def run(self, work: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run ``work`` inside one transaction.

        Args:
            work: Coroutine function receiving the Transaction handle

        Returns:
            Whatever ``work`` returned, after COMMIT

        Raises:
            The original exception raised by ``work`` (after ROLLBACK)
        """
        async with self.begin() as transaction:
            return await work(transaction)

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[Transaction]:
        """
        Context manager form of run().

        Usage:
            async with scope.begin() as tx:
                await tx.execute(...)
                # COMMIT on normal exit, ROLLBACK on exception
        """
        engine = self.pool.get()

        try:
            connection = await engine.connect()
        except Exception as e:
            translated = translate_error(e)
            logger.error(
                'Failed to acquire connection for transaction',
                extra={'error': sanitize_error(e)},
            )
            if translated is e:
                raise
            raise translated from e

        try:
            db_transaction = await connection.begin()
            try:
                yield Transaction(connection, self.executor)
            except Exception as error:
                await self._rollback(db_transaction, error)
                raise
            await db_transaction.commit()
        finally:
            await connection.close()

    @staticmethod
    async def _rollback(db_transaction, error: Exception) -> None:
        """Roll back; a rollback failure is logged, never raised."""
        try:
            await db_transaction.rollback()
        except Exception as rollback_error:
            logger.error(
                'Transaction rollback failed',
                extra={
                    'error': sanitize_error(rollback_error),
                    'original_error': sanitize_error(error),
                },
            )
            return

        logger.error(
            'Transaction rolled back',
            extra={'error': sanitize_error(error)},
        )

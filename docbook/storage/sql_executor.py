"""
Query executor: the single choke point between SQL text and the database.

This module provides the QueryExecutor class which executes parameterized
SQL statements through the shared connection pool, times every statement,
emits one structured log event per execution and translates driver errors
into the storage exception hierarchy.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from sqlalchemy import exc as sa_exc
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from .errors import (
    ForeignKeyViolationError,
    IntegrityError,
    NotNullViolationError,
    QueryError,
    StorageConnectionError,
    StorageError,
    UniqueViolationError,
)
from .pool import ConnectionPool
from .sql_parameter import ParameterBinder


logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE codes for constraint violations
_PG_CONSTRAINT_CODES = {
    '23505': UniqueViolationError,
    '23503': ForeignKeyViolationError,
    '23502': NotNullViolationError,
}

# SQLite extended result code names
_SQLITE_CONSTRAINT_CODES = {
    'SQLITE_CONSTRAINT_UNIQUE': UniqueViolationError,
    'SQLITE_CONSTRAINT_PRIMARYKEY': UniqueViolationError,
    'SQLITE_CONSTRAINT_FOREIGNKEY': ForeignKeyViolationError,
    'SQLITE_CONSTRAINT_NOTNULL': NotNullViolationError,
}

# Last resort for drivers that expose no code
_CONSTRAINT_MESSAGES = (
    ('duplicate key value', UniqueViolationError),
    ('unique constraint', UniqueViolationError),
    ('foreign key constraint', ForeignKeyViolationError),
    ('not null constraint', NotNullViolationError),
    ('not-null constraint', NotNullViolationError),
)

_SQLITE_CONNECTIVITY_CODES = ('SQLITE_CANTOPEN', 'SQLITE_BUSY', 'SQLITE_LOCKED')

_SQLITE_STATEMENT_MESSAGES = ('no such table', 'no such column', 'syntax error')

MAX_ERROR_LENGTH = 500

_DOLLAR_QUOTE = re.compile(r'\$[A-Za-z_]*\$')


@dataclass
class QueryResult:
    """
    Normalized result of one statement.

    Attributes:
        rows: Row dicts in the order the engine returned them
        row_count: Rows returned (row-returning statements) or affected
    """

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0

    def first(self) -> Optional[dict[str, Any]]:
        return self.rows[0] if self.rows else None


def split_sql_statements(sql: str) -> list[str]:
    """Split a SQL script into individual statements.

    Splits on semicolons outside string literals, quoted identifiers and
    dollar-quoted bodies. ``--`` and ``/* */`` comments are dropped.
    SQLAlchemy drivers accept one statement per execute call, so scripts
    go through here.

    Args:
        sql: SQL string with one or more statements

    Returns:
        List of individual SQL statements (without trailing semicolons)
    """
    statements = []
    current = []
    quote = None
    i = 0
    length = len(sql)

    while i < length:
        char = sql[i]

        if quote is not None:
            if sql.startswith(quote, i):
                current.append(quote)
                i += len(quote)
                quote = None
            else:
                current.append(char)
                i += 1
            continue

        if char == '-' and sql.startswith('--', i):
            newline = sql.find('\n', i)
            i = length if newline == -1 else newline
            continue

        if char == '/' and sql.startswith('/*', i):
            end = sql.find('*/', i + 2)
            i = length if end == -1 else end + 2
            current.append(' ')
            continue

        if char in ("'", '"'):
            quote = char
            current.append(char)
            i += 1
            continue

        if char == '$':
            match = _DOLLAR_QUOTE.match(sql, i)
            if match:
                quote = match.group(0)
                current.append(quote)
                i = match.end()
                continue

        if char == ';':
            stmt = ''.join(current).strip()
            if stmt:
                statements.append(stmt)
            current = []
            i += 1
            continue

        current.append(char)
        i += 1

    stmt = ''.join(current).strip()
    if stmt:
        statements.append(stmt)

    return statements


class QueryExecutor:
    """
    Execute SQL statements through the shared connection pool.

    Every statement is parameterized: $N placeholders are bound by the
    driver, never interpolated into the SQL text.

    Example:
        >>> executor = QueryExecutor(pool)
        >>> result = await executor.execute(
        ...     "SELECT id, email FROM users WHERE role = $1",
        ...     ["doctor"],
        ... )
        >>> print(result.row_count)
        3
    """

    def __init__(self, pool: ConnectionPool, binder: Optional[ParameterBinder] = None):
        self.pool = pool
        self.binder = binder or ParameterBinder()

    async def execute(
        self,
        statement: str,
        params: Sequence[Any] = (),
    ) -> QueryResult:
        """
        Execute one statement on a pooled connection and commit it.

        Args:
            statement: SQL with $1..$N placeholders
            params: Positional values for the placeholders

        Returns:
            QueryResult with rows in engine order

        Raises:
            PoolNotInitializedError: Pool not initialized
            StorageConnectionError: Engine unreachable / acquire timeout
            IntegrityError: Constraint violation (or a subclass)
            QueryError: Any other statement failure
        """
        engine = self.pool.get()
        start = time.perf_counter()

        try:
            query, binds = self.binder.bind(statement, params)
            async with engine.begin() as connection:
                result = await self._fetch(connection, query, binds)
        except Exception as e:
            translated = self._fail(e, statement, params, start)
            if translated is e:
                raise
            raise translated from e

        self._succeed(result, statement, params, start)
        return result

    async def execute_on(
        self,
        connection: AsyncConnection,
        statement: str,
        params: Sequence[Any] = (),
    ) -> QueryResult:
        """
        Execute one statement on a caller-owned connection.

        Used by transaction handles. Does not commit; the owner of the
        connection decides the transaction outcome.
        """
        start = time.perf_counter()

        try:
            query, binds = self.binder.bind(statement, params)
            result = await self._fetch(connection, query, binds)
        except Exception as e:
            translated = self._fail(e, statement, params, start)
            if translated is e:
                raise
            raise translated from e

        self._succeed(result, statement, params, start)
        return result

    async def execute_script(self, body: str) -> int:
        """
        Execute a multi-statement script as one request.

        All statements run in order on one connection inside one
        transaction. Whether DDL inside it is transactional is up to the
        engine (PostgreSQL: yes).

        Args:
            body: SQL script, statements separated by semicolons

        Returns:
            Number of statements executed
        """
        engine = self.pool.get()
        start = time.perf_counter()
        statements = split_sql_statements(body)

        try:
            async with engine.begin() as connection:
                for stmt in statements:
                    await connection.exec_driver_sql(stmt)
        except Exception as e:
            translated = self._fail(e, body, (), start)
            if translated is e:
                raise
            raise translated from e

        logger.debug(
            'Database script executed',
            extra={
                'query': body,
                'statement_count': len(statements),
                'duration_ms': _elapsed_ms(start),
            },
        )
        return len(statements)

    async def _fetch(
        self,
        connection: AsyncConnection,
        query: str,
        binds: dict[str, Any],
    ) -> QueryResult:
        result = await connection.execute(text(query), binds)

        if result.returns_rows:
            rows = [dict(row._mapping) for row in result.fetchall()]
            return QueryResult(rows=rows, row_count=len(rows))

        return QueryResult(rows=[], row_count=max(result.rowcount or 0, 0))

    def _succeed(
        self,
        result: QueryResult,
        statement: str,
        params: Sequence[Any],
        start: float,
    ) -> None:
        logger.debug(
            'Database query executed',
            extra={
                'query': statement,
                'params': list(params),
                'duration_ms': _elapsed_ms(start),
                'row_count': result.row_count,
            },
        )

    def _fail(
        self,
        error: Exception,
        statement: str,
        params: Sequence[Any],
        start: float,
    ) -> Exception:
        """Log the failure and return the exception to raise."""
        details = {
            'query': statement,
            'params': list(params),
            'duration_ms': _elapsed_ms(start),
        }
        message = sanitize_error(error)

        logger.error(
            'Database query failed',
            extra={**details, 'error': message},
        )
        return translate_error(error, details)


def sanitize_error(error: BaseException) -> str:
    """
    Driver message without SQLAlchemy's echoed SQL/parameters.

    Only the first line of the underlying DBAPI error is kept, capped at
    MAX_ERROR_LENGTH characters.
    """
    source = error
    if isinstance(error, sa_exc.DBAPIError) and error.orig is not None:
        source = error.orig

    message = str(source).strip() or type(source).__name__
    message = message.splitlines()[0]
    if len(message) > MAX_ERROR_LENGTH:
        message = message[:MAX_ERROR_LENGTH] + '...'
    return message


def translate_error(error: Exception, details: Optional[dict[str, Any]] = None) -> Exception:
    """
    Translate SQLAlchemy/driver errors into storage errors.

    Storage errors and non-database exceptions are returned unchanged.

    Args:
        error: Original exception
        details: Context attached to the translated error

    Returns:
        Exception to raise (chained to ``error`` by the caller)
    """
    if isinstance(error, StorageError):
        return error

    details = details or {}
    message = sanitize_error(error)

    if isinstance(error, sa_exc.IntegrityError):
        error_class = _classify_constraint(error)
        return error_class(
            message,
            details={**details, 'constraint_type': error_class.constraint_type},
            original_error=error,
        )

    if _is_connectivity_error(error):
        return StorageConnectionError(
            message,
            details={**details, 'transient': True},
            original_error=error,
        )

    if isinstance(error, sa_exc.SQLAlchemyError):
        return QueryError(message, details=details, original_error=error)

    return error


def _is_connectivity_error(error: Exception) -> bool:
    """
    True when the engine could not be reached or the connection broke.

    SQLite reports statement problems ("no such table", syntax errors) as
    OperationalError too, so for SQLite only open/busy/locked codes count.
    """
    if isinstance(error, (sa_exc.TimeoutError, sa_exc.InterfaceError, OSError)):
        return True
    if isinstance(error, sa_exc.DBAPIError) and error.connection_invalidated:
        return True
    if not isinstance(error, sa_exc.OperationalError):
        return False

    name = getattr(error.orig, 'sqlite_errorname', None)
    if name is not None:
        return name.startswith(_SQLITE_CONNECTIVITY_CODES)

    lowered = str(error.orig).lower()
    if any(pattern in lowered for pattern in _SQLITE_STATEMENT_MESSAGES):
        return False
    return True


def _classify_constraint(error: sa_exc.IntegrityError) -> type[IntegrityError]:
    """
    Pick the IntegrityError subclass for a constraint failure.

    Checks, in order: PostgreSQL SQLSTATE (sqlstate/pgcode on the adapted
    DBAPI error or its asyncpg cause), the SQLite extended result code
    name, then the message text.
    """
    candidates = [error.orig, getattr(error.orig, '__cause__', None)]

    for candidate in candidates:
        if candidate is None:
            continue
        code = getattr(candidate, 'sqlstate', None) or getattr(candidate, 'pgcode', None)
        if code in _PG_CONSTRAINT_CODES:
            return _PG_CONSTRAINT_CODES[code]
        name = getattr(candidate, 'sqlite_errorname', None)
        if name in _SQLITE_CONSTRAINT_CODES:
            return _SQLITE_CONSTRAINT_CODES[name]

    lowered = str(error.orig if error.orig is not None else error).lower()
    for pattern, error_class in _CONSTRAINT_MESSAGES:
        if pattern in lowered:
            return error_class

    return IntegrityError


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)

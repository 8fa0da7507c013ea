"""
Storage layer: connection pool, query executor and transaction scope.
"""

from .errors import (
    ForeignKeyViolationError,
    IntegrityError,
    MigrationDiscoveryError,
    MigrationError,
    NotNullViolationError,
    PoolNotInitializedError,
    QueryError,
    StorageConnectionError,
    StorageError,
    UniqueViolationError,
)
from .pool import ConnectionPool, PoolConfig, normalize_database_url
from .sql_executor import QueryExecutor, QueryResult, split_sql_statements
from .sql_parameter import ParameterBinder, ParameterError
from .transaction import Transaction, TransactionScope

__all__ = [
    'ConnectionPool',
    'ForeignKeyViolationError',
    'IntegrityError',
    'MigrationDiscoveryError',
    'MigrationError',
    'NotNullViolationError',
    'ParameterBinder',
    'ParameterError',
    'PoolConfig',
    'PoolNotInitializedError',
    'QueryError',
    'QueryExecutor',
    'QueryResult',
    'StorageConnectionError',
    'StorageError',
    'Transaction',
    'TransactionScope',
    'UniqueViolationError',
    'normalize_database_url',
    'split_sql_statements',
]

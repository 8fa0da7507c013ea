"""
Account repository: create and look up user accounts.
"""

import asyncio
import logging
import uuid
from typing import Callable, Optional

from docbook.storage.errors import QueryError, StorageError, UniqueViolationError
from docbook.storage.sql_executor import QueryExecutor

from .models import Account, AccountAlreadyExistsError, NewAccount
from .passwords import hash_password


logger = logging.getLogger(__name__)

_ACCOUNT_COLUMNS = "id, email, role, created_at, updated_at"


class AccountRepository:
    """
    Account persistence on top of the query executor.

    Example:
        >>> repo = AccountRepository(executor)
        >>> account = await repo.create(
        ...     NewAccount('alice@example.com', 'S3curePassword', UserRole.PATIENT)
        ... )
        >>> await repo.find_by_email('alice@example.com')
        Account(id='...', email='alice@example.com', role=<UserRole.PATIENT: 'patient'>, ...)
    """

    def __init__(
        self,
        executor: QueryExecutor,
        hasher: Callable[[str], str] = hash_password,
    ):
        self.executor = executor
        self.hasher = hasher

    async def create(self, new_account: NewAccount) -> Account:
        """
        Hash the password and insert the account.

        Raises:
            AccountAlreadyExistsError: Email already registered
            StorageError: Any other storage failure
        """
        email = new_account.email
        role = new_account.role.value

        # Hashing is CPU bound; keep it off the event loop
        password_hash = await asyncio.to_thread(self.hasher, new_account.password)

        try:
            result = await self.executor.execute(
                f"""
                INSERT INTO users (id, email, password_hash, role)
                VALUES ($1, $2, $3, $4)
                RETURNING {_ACCOUNT_COLUMNS}
                """,
                [str(uuid.uuid4()), email, password_hash, role],
            )
        except UniqueViolationError as e:
            logger.error(
                'Failed to create user',
                extra={'email': email, 'role': role, 'error': 'Email already exists'},
            )
            raise AccountAlreadyExistsError(email) from e
        except StorageError as e:
            logger.error(
                'Failed to create user',
                extra={'email': email, 'role': role, 'error': str(e)},
            )
            raise

        row = result.first()
        if row is None:
            raise QueryError('Failed to create user', details={'email': email})

        account = Account.from_row(row)
        logger.info(
            'User created successfully',
            extra={'user_id': account.id, 'email': account.email, 'role': role},
        )
        return account

    async def find_by_email(self, email: str) -> Optional[Account]:
        try:
            result = await self.executor.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE email = $1",
                [email],
            )
        except StorageError as e:
            logger.error(
                'Failed to find user by email',
                extra={'email': email, 'error': str(e)},
            )
            raise

        row = result.first()
        return Account.from_row(row) if row else None

    async def find_by_id(self, account_id: str) -> Optional[Account]:
        try:
            result = await self.executor.execute(
                f"SELECT {_ACCOUNT_COLUMNS} FROM users WHERE id = $1",
                [account_id],
            )
        except StorageError as e:
            logger.error(
                'Failed to find user by ID',
                extra={'user_id': account_id, 'error': str(e)},
            )
            raise

        row = result.first()
        return Account.from_row(row) if row else None

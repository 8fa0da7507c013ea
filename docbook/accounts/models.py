"""
Account domain types.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from docbook.migrations.migration import parse_timestamp


class UserRole(str, Enum):
    PATIENT = 'patient'
    DOCTOR = 'doctor'
    ADMIN = 'admin'


class AccountAlreadyExistsError(Exception):
    """An account with this email is already registered."""

    def __init__(self, email: str):
        self.email = email
        super().__init__('Email already exists')


@dataclass
class NewAccount:
    """Input for account creation. The password is plain text."""

    email: str
    password: str
    role: UserRole

    def __repr__(self) -> str:
        return f"<NewAccount({self.email}, {self.role.value})>"


@dataclass
class Account:
    """
    A registered account. Never carries the password hash.

    Attributes:
        id: UUID string
        email: Login email, unique
        role: patient, doctor or admin
        created_at: Set by the database
        updated_at: Set by the database
    """

    id: str
    email: str
    role: UserRole
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> 'Account':
        return cls(
            id=str(row['id']),
            email=row['email'],
            role=UserRole(row['role']),
            created_at=parse_timestamp(row.get('created_at')),
            updated_at=parse_timestamp(row.get('updated_at')),
        )

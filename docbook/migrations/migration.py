"""
Database migration data models.

This module defines the core data structures for schema migrations:
- MigrationScript: a numbered SQL script discovered on disk
- MigrationRecord: a row of the bookkeeping table (an applied migration)
- MigrationStatus: applied vs pending snapshot for operators
"""

import hashlib
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Union


@dataclass
class MigrationScript:
    """
    Represents a single forward-only migration script.

    Attributes:
        id: Numeric prefix of the filename (e.g., 7 for '0007_add_index.sql')
        filename: Full filename (e.g., '0007_add_index.sql')
        path: Absolute path to the script
        body: SQL executed verbatim when the migration is applied
        checksum: SHA-256 hash of the body

    Example:
        >>> script = MigrationScript(
        ...     id=1,
        ...     filename='0001_create_users.sql',
        ...     path='/srv/docbook/migrations/sql/0001_create_users.sql',
        ...     body='CREATE TABLE users (id VARCHAR(36) PRIMARY KEY);',
        ... )
        >>> print(script)
        <MigrationScript(1, 0001_create_users.sql)>
    """

    id: int
    filename: str
    path: str
    body: str
    checksum: str = ''

    def __post_init__(self):
        if self.id < 0:
            raise ValueError(f"Migration id must be >= 0, got {self.id}")
        if not self.checksum:
            self.checksum = hashlib.sha256(self.body.encode('utf-8')).hexdigest()

    def __lt__(self, other: 'MigrationScript') -> bool:
        """Order by numeric id, then filename."""
        if not isinstance(other, MigrationScript):
            return NotImplemented
        return (self.id, self.filename) < (other.id, other.filename)

    def __repr__(self) -> str:
        return f"<MigrationScript({self.id}, {self.filename})>"


@dataclass
class MigrationRecord:
    """
    A migration that has been applied (one row of the bookkeeping table).

    Attributes:
        id: Migration id (primary key)
        filename: Script filename at the time it was applied
        executed_at: Set by the database at insert time. SQLite returns
            it as text; see from_row().
    """

    id: int
    filename: str
    executed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row: dict) -> 'MigrationRecord':
        return cls(
            id=int(row['id']),
            filename=row['filename'],
            executed_at=parse_timestamp(row.get('executed_at')),
        )

    def __repr__(self) -> str:
        return f"<MigrationRecord({self.id}, {self.filename})>"


@dataclass
class MigrationStatus:
    """
    Snapshot of the schema history.

    Attributes:
        applied: Records from the bookkeeping table, ascending id
        pending: Scripts on disk not yet applied, ascending id
        unknown: Applied ids with no script on disk
    """

    applied: list[MigrationRecord] = field(default_factory=list)
    pending: list[MigrationScript] = field(default_factory=list)
    unknown: list[int] = field(default_factory=list)

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending


def parse_timestamp(value: Union[datetime, str, None]) -> Optional[datetime]:
    """Accept datetimes (PostgreSQL) or ISO-ish strings (SQLite)."""
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))

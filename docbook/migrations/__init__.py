"""
Database migrations package.

This package provides:
- MigrationScript: Data model for migration files
- MigrationRecord: Data model for applied migrations
- MigrationStatus: Applied/pending snapshot
- MigrationManager: Discovery and validation of migration files
- MigrationRunner: Ordered, recorded application of pending migrations
"""

from .migration import MigrationRecord, MigrationScript, MigrationStatus
from .migration_manager import MigrationManager
from .migration_runner import DEFAULT_MIGRATIONS_DIR, MigrationRunner

__all__ = [
    'DEFAULT_MIGRATIONS_DIR',
    'MigrationManager',
    'MigrationRecord',
    'MigrationRunner',
    'MigrationScript',
    'MigrationStatus',
]

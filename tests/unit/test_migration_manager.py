"""
Unit tests for MigrationManager and the migration data models.

Tests cover:
- Migration file discovery and sorting
- Malformed names and duplicate ids (all reported, nothing returned)
- Checksum computation
- Pending migrations calculation
"""

import hashlib
from datetime import datetime, timezone

import pytest

from docbook.migrations.migration import (
    MigrationRecord,
    MigrationScript,
    MigrationStatus,
    parse_timestamp,
)
from docbook.migrations.migration_manager import MigrationManager
from docbook.migrations.migration_runner import DEFAULT_MIGRATIONS_DIR
from docbook.storage.errors import MigrationDiscoveryError, MigrationError


def script(migration_id, filename=None, body='SELECT 1;'):
    return MigrationScript(
        id=migration_id,
        filename=filename or f'{migration_id:04d}_m.sql',
        path=f'/tmp/{migration_id}.sql',
        body=body,
    )


class TestMigrationDiscovery:
    """Test migration file discovery."""

    def test_sorted_by_numeric_id(self, migrations_dir, write_migration):
        write_migration('10_add_index.sql', 'CREATE INDEX i ON t (a);')
        write_migration('9_add_column.sql', 'ALTER TABLE t ADD COLUMN a INT;')
        write_migration('1_create_table.sql', 'CREATE TABLE t (id INT);')

        scripts = MigrationManager(migrations_dir).discover_migrations()

        assert [s.id for s in scripts] == [1, 9, 10]
        assert scripts[0].filename == '1_create_table.sql'
        assert scripts[0].body == 'CREATE TABLE t (id INT);'
        assert scripts[0].path.endswith('1_create_table.sql')

    def test_gaps_allowed(self, migrations_dir, write_migration):
        write_migration('0001_a.sql', 'SELECT 1;')
        write_migration('0005_b.sql', 'SELECT 1;')

        scripts = MigrationManager(migrations_dir).discover_migrations()

        assert [s.id for s in scripts] == [1, 5]

    def test_non_sql_files_ignored(self, migrations_dir, write_migration):
        write_migration('0001_a.sql', 'SELECT 1;')
        write_migration('README.md', '# Migrations')
        write_migration('0002_b.sql.bak', 'SELECT 2;')

        scripts = MigrationManager(migrations_dir).discover_migrations()

        assert [s.filename for s in scripts] == ['0001_a.sql']

    def test_empty_directory(self, migrations_dir):
        assert MigrationManager(migrations_dir).discover_migrations() == []

    def test_missing_directory(self, tmp_path):
        with pytest.raises(MigrationDiscoveryError, match='not found'):
            MigrationManager(tmp_path / 'nope').discover_migrations()

    @pytest.mark.parametrize('filename', [
        'create_users.sql',
        '0001-create_users.sql',
        '0001.sql',
        'v1_create_users.sql',
    ])
    def test_malformed_filename(self, migrations_dir, write_migration, filename):
        write_migration('0001_ok.sql', 'SELECT 1;')
        write_migration(filename, 'SELECT 1;')

        with pytest.raises(MigrationDiscoveryError) as exc_info:
            MigrationManager(migrations_dir).discover_migrations()

        assert exc_info.value.problems == [
            f'Invalid migration filename: {filename}. '
            f'Must start with a number followed by an underscore.'
        ]

    def test_duplicate_ids(self, migrations_dir, write_migration):
        write_migration('0002_add_slots.sql', 'SELECT 1;')
        write_migration('2_add_doctors.sql', 'SELECT 1;')

        with pytest.raises(MigrationDiscoveryError, match='Duplicate migration id 2'):
            MigrationManager(migrations_dir).discover_migrations()

    def test_every_problem_reported(self, migrations_dir, write_migration):
        write_migration('0001_a.sql', 'SELECT 1;')
        write_migration('0001_b.sql', 'SELECT 1;')
        write_migration('bad.sql', 'SELECT 1;')

        with pytest.raises(MigrationDiscoveryError) as exc_info:
            MigrationManager(migrations_dir).discover_migrations()

        error = exc_info.value
        assert len(error.problems) == 2
        assert isinstance(error, MigrationError)
        assert str(error).startswith('Invalid migration scripts: ')

    def test_shipped_scripts_are_valid(self):
        scripts = MigrationManager(DEFAULT_MIGRATIONS_DIR).discover_migrations()

        assert scripts[0].filename == '0001_create_users.sql'
        assert 'CREATE TABLE' in scripts[0].body


class TestPending:

    def test_excludes_applied(self):
        scripts = [script(1), script(2), script(3)]

        pending = MigrationManager.pending(scripts, {1, 2})

        assert [s.id for s in pending] == [3]

    def test_sorted_regardless_of_input_order(self):
        pending = MigrationManager.pending([script(5), script(2), script(9)], [])

        assert [s.id for s in pending] == [2, 5, 9]

    def test_applied_ids_without_scripts_ignored(self):
        pending = MigrationManager.pending([script(1)], {1, 42})

        assert pending == []


class TestMigrationScript:

    def test_checksum_computed(self):
        body = 'CREATE TABLE users (id VARCHAR(36));'

        assert script(1, body=body).checksum == hashlib.sha256(body.encode('utf-8')).hexdigest()

    def test_negative_id_rejected(self):
        with pytest.raises(ValueError):
            script(-1, filename='x.sql')

    def test_ordering(self):
        assert script(2) < script(10)
        assert sorted([script(3), script(1)])[0].id == 1

    def test_repr(self):
        assert repr(script(7, '0007_add_index.sql')) == '<MigrationScript(7, 0007_add_index.sql)>'


class TestMigrationRecord:

    def test_from_sqlite_row(self):
        record = MigrationRecord.from_row(
            {'id': '3', 'filename': '0003_x.sql', 'executed_at': '2026-01-05 10:00:00'}
        )

        assert record.id == 3
        assert record.executed_at == datetime(2026, 1, 5, 10, 0, 0)

    def test_from_postgres_row(self):
        executed_at = datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)

        record = MigrationRecord.from_row(
            {'id': 3, 'filename': '0003_x.sql', 'executed_at': executed_at}
        )

        assert record.executed_at is executed_at

    def test_parse_timestamp_none(self):
        assert parse_timestamp(None) is None


def test_status_up_to_date():
    assert MigrationStatus().is_up_to_date
    assert not MigrationStatus(pending=[script(1)]).is_up_to_date

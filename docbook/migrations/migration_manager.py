"""
Migration manager: discovery and validation of migration scripts.

Migration files follow the naming convention: <digits>_<description>.sql
Example: 0001_create_users.sql, 0002_add_appointments.sql

The leading digits are the migration id. Ids need not be contiguous but
must be unique. Files are read in ascending filename order and then
sorted by numeric id, so '10_x.sql' comes after '9_x.sql' even though it
sorts before it lexicographically.
"""

import logging
import re
from pathlib import Path
from typing import Iterable, List, Union

from docbook.storage.errors import MigrationDiscoveryError

from .migration import MigrationScript

logger = logging.getLogger(__name__)


class MigrationManager:
    """
    Discovers migration scripts in one directory.

    Discovery is all-or-nothing: malformed names and duplicate ids are
    collected and reported together in a single MigrationDiscoveryError,
    before any script can be applied.

    Example:
        >>> manager = MigrationManager(Path('/srv/docbook/migrations'))
        >>> manager.discover_migrations()
        [<MigrationScript(1, 0001_create_users.sql)>, <MigrationScript(2, 0002_add_slots.sql)>]
    """

    MIGRATION_PATTERN = re.compile(r'^(\d+)_.+\.sql$')

    def __init__(self, migrations_dir: Union[str, Path]):
        self.migrations_dir = Path(migrations_dir)

    def discover_migrations(self) -> List[MigrationScript]:
        """
        Load every migration script, sorted by id ascending.

        Returns:
            List of MigrationScript objects

        Raises:
            MigrationDiscoveryError: Directory missing, malformed filename,
                or duplicate id (all problems listed)
        """
        if not self.migrations_dir.is_dir():
            raise MigrationDiscoveryError(
                [f"Migrations directory not found: {self.migrations_dir}"]
            )

        problems = []
        scripts = []
        seen = {}

        for file_path in sorted(self.migrations_dir.glob('*.sql')):
            match = self.MIGRATION_PATTERN.match(file_path.name)
            if not match:
                problems.append(
                    f"Invalid migration filename: {file_path.name}. "
                    f"Must start with a number followed by an underscore."
                )
                continue

            migration_id = int(match.group(1))
            if migration_id in seen:
                problems.append(
                    f"Duplicate migration id {migration_id}: "
                    f"{seen[migration_id]} and {file_path.name}"
                )
                continue
            seen[migration_id] = file_path.name

            scripts.append(MigrationScript(
                id=migration_id,
                filename=file_path.name,
                path=str(file_path.absolute()),
                body=file_path.read_text(encoding='utf-8'),
            ))

        if problems:
            for problem in problems:
                logger.error(problem)
            raise MigrationDiscoveryError(problems)

        scripts.sort()
        logger.debug(
            'Discovered %d migration scripts', len(scripts),
            extra={'migrations_dir': str(self.migrations_dir)},
        )
        return scripts

    @staticmethod
    def pending(
        scripts: Iterable[MigrationScript],
        applied_ids: Iterable[int],
    ) -> List[MigrationScript]:
        """
        Scripts whose id is not in applied_ids, ascending by id.

        Example:
            >>> MigrationManager.pending(scripts, {1, 2})
            [<MigrationScript(3, 0003_add_index.sql)>]
        """
        applied = set(applied_ids)
        return sorted(s for s in scripts if s.id not in applied)

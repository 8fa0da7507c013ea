"""
Command line entry point.

Usage:
    python -m docbook migrate            # apply pending migrations
    python -m docbook migrate --status   # show applied / pending
    python -m docbook check              # foundation self-test
"""
import argparse
import asyncio
import logging
import sys

from docbook.config import ConfigurationError, configure_from_settings, load_settings
from docbook.foundation import check_foundation, migration_status, run_migrations


logger = logging.getLogger('docbook.cli')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='docbook',
        description='Doctors booking backend: database tasks',
    )
    parser.add_argument(
        '--env-file',
        default='.env',
        help='dotenv file read before the process environment (default: .env)',
    )
    commands = parser.add_subparsers(dest='command', required=True)

    migrate = commands.add_parser('migrate', help='apply pending migrations')
    migrate.add_argument(
        '--status',
        action='store_true',
        help='list applied and pending migrations without applying',
    )
    commands.add_parser('check', help='verify configuration, database and migrations')
    return parser


def _print_status(status) -> None:
    for record in status.applied:
        print(f'  applied  {record.id:>5}  {record.filename}  {record.executed_at or ""}')
    for script in status.pending:
        print(f'  pending  {script.id:>5}  {script.filename}')
    for migration_id in status.unknown:
        print(f'  unknown  {migration_id:>5}  (no script on disk)')
    print('Up to date' if status.is_up_to_date else f'{len(status.pending)} pending')


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings(env_file=args.env_file)
    except ConfigurationError as e:
        print(f'ERROR: {e}', file=sys.stderr)
        return 1

    configure_from_settings(settings)

    try:
        if args.command == 'check':
            asyncio.run(check_foundation(settings))
        elif args.status:
            _print_status(asyncio.run(migration_status(settings)))
        else:
            applied = asyncio.run(run_migrations(settings))
            print(f'Applied {len(applied)} migrations')
    except Exception as e:
        logger.error(
            'Command %s failed', args.command,
            extra={'error': str(e)},
            exc_info=True,
        )
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())

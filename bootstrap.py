import argparse
import logging
from pathlib import Path

from alembic import command
from alembic.config import Config

from classbook.db import Base, engine, session_scope
from classbook.services.bootstrap_service import run_bootstrap


logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger('bootstrap')

ALEMBIC_INI = Path(__file__).resolve().parent / 'alembic.ini'


def migrate(create_all: bool) -> None:
    if create_all:
        Base.metadata.create_all(bind=engine)
        logger.info('schema_created_from_metadata')
        return
    command.upgrade(Config(str(ALEMBIC_INI)), 'head')
    logger.info('schema_upgraded revision=head')


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description='Prepare the schema and per-organization settings.')
    parser.add_argument(
        '--create-all',
        action='store_true',
        help='create tables straight from the models instead of running migrations (local SQLite)',
    )
    args = parser.parse_args(argv)

    migrate(args.create_all)
    with session_scope() as db:
        result = run_bootstrap(db)
    if result['ran']:
        logger.info('bootstrap_executed %s', result)
    else:
        logger.info('bootstrap_skipped %s', result)


if __name__ == '__main__':
    main()

"""
Purge job - Delete accounts disabled longer than the retention period.

Meant to run on a schedule outside the web process:

    python -m src.jobs.purge
"""

import logging
from datetime import timedelta

from psycopg_pool import ConnectionPool

from src.adapters.messaging.console import ConsoleNotificationPublisher
from src.adapters.repository.postgres import PostgresFriendRepository, PostgresUserRepository
from src.config.settings import get_settings
from src.domain.users import AccountPurger

logger = logging.getLogger(__name__)


def build_purger(pool: ConnectionPool) -> AccountPurger:
    return AccountPurger(
        users=PostgresUserRepository(pool),
        friends=PostgresFriendRepository(pool),
        publisher=ConsoleNotificationPublisher(),
    )


def main() -> None:
    settings = get_settings()
    logging.basicConfig(level=logging.INFO)
    logger.info("Purging accounts inactive for %d day(s)", settings.purge_retention_days)
    with ConnectionPool(conninfo=settings.database_url, min_size=1, max_size=1) as pool:
        purged = build_purger(pool).purge_inactive(
            timedelta(days=settings.purge_retention_days)
        )
    logger.info("Purge complete: %d account(s)", len(purged))


if __name__ == "__main__":
    main()

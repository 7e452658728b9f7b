from __future__ import annotations

import argparse
import logging
import sys

from app.application.services.auth_state_store import AuthStateStore
from app.application.use_cases.auth_common import utcnow
from app.infrastructure.db.engine import create_schema, get_engine
from app.infrastructure.db.repositories.auth_state_repository import SqlAuthStateRepository
from app.infrastructure.db.repositories.revocation_repository import SqlRevocationRepository
from app.shared.config import get_settings


logger = logging.getLogger(__name__)


def prune_expired(engine, *, state_ttl_seconds: int) -> tuple[int, int]:
    states = AuthStateStore(
        state_port=SqlAuthStateRepository(engine),
        ttl_seconds=state_ttl_seconds,
    ).prune()
    revocations = SqlRevocationRepository(engine).prune_revoked(now=utcnow())
    return states, revocations


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="auth-db", description="Auth database maintenance.")
    parser.add_argument("command", choices=["create-schema", "prune"])
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    settings = get_settings()
    if not settings.postgres_dsn:
        logger.error("maintenance: POSTGRES_DSN is required.")
        return 2
    engine = get_engine(settings.postgres_dsn)

    if args.command == "create-schema":
        create_schema(engine)
        logger.info("maintenance: schema_created")
        return 0

    states, revocations = prune_expired(engine, state_ttl_seconds=settings.auth_state_ttl_seconds)
    logger.info("maintenance: pruned states=%s revocations=%s", states, revocations)
    return 0


if __name__ == "__main__":
    sys.exit(main())

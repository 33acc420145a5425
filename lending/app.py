"""Wiring: build the router and services from configuration."""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional
import logging

from lending.catalog import CatalogReader
from lending.config import Config
from lending.database import Database
from lending.lifecycle import LoanLifecycle
from lending.router import ConsistencyRouter
from lending.seed import seed_library
from lending.service import BookService

logger = logging.getLogger(__name__)


@dataclass
class Library:
    """Everything a caller needs, sharing one router."""
    router: ConsistencyRouter
    catalog: CatalogReader
    lifecycle: LoanLifecycle
    service: BookService


def create_router(config: Config) -> ConsistencyRouter:
    """Build primary and replica handles from configuration."""
    primary = Database(
        config.PRIMARY_DATABASE_URL,
        min_conn=config.DB_MIN_CONN,
        max_conn=config.DB_MAX_CONN,
        name="primary"
    )
    replica = Database(
        config.REPLICA_DATABASE_URL,
        min_conn=config.DB_MIN_CONN,
        max_conn=config.DB_MAX_CONN,
        name="replica"
    )
    return ConsistencyRouter(primary, replica, max_stale_ms=config.MAX_STALE_MS)


def build_library(router: ConsistencyRouter, config: Config) -> Library:
    """Wire catalog, lifecycle and service around an existing router."""
    catalog = CatalogReader(router)
    lifecycle = LoanLifecycle(router, catalog)
    service = BookService(
        catalog,
        lifecycle,
        default_per_page=config.DEFAULT_PER_PAGE,
        max_per_page=config.MAX_PER_PAGE
    )
    return Library(router, catalog, lifecycle, service)


@asynccontextmanager
async def open_library(
    config: Config,
    router: Optional[ConsistencyRouter] = None,
    init_schema: bool = False
) -> AsyncIterator[Library]:
    """
    Connect, optionally prepare the schema, and disconnect on exit.

    Args:
        config: Application configuration
        router: Pre-built router (defaults to ``create_router(config)``)
        init_schema: Create tables before yielding
    """
    router = router or create_router(config)
    await router.connect()
    try:
        if init_schema:
            await router.execute_on_primary(lambda s: s.create_schema())
            logger.info("Database schema initialized successfully")
        if config.SEED_ON_STARTUP:
            await seed_library(router)
        yield build_library(router, config)
    finally:
        await router.disconnect()

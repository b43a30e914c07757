"""
asyncpg pool creation for the PostgreSQL repositories.
"""

import json
import logging
from importlib import resources

import asyncpg
from asyncpg import Connection, Pool

logger = logging.getLogger(__name__)


async def _init_connection(conn: Connection) -> None:
    """Decode jsonb columns to Python objects and back."""
    await conn.set_type_codec(
        "jsonb",
        encoder=json.dumps,
        decoder=json.loads,
        schema="pg_catalog",
    )


async def create_pool(dsn: str, min_size: int = 1, max_size: int = 10) -> Pool:
    logger.debug(
        "Creating PostgreSQL pool",
        extra={"min_size": min_size, "max_size": max_size},
    )
    pool = await asyncpg.create_pool(
        dsn, min_size=min_size, max_size=max_size, init=_init_connection
    )
    logger.info("PostgreSQL pool created")
    return pool


async def apply_schema(pool: Pool) -> None:
    """Create any missing tables and indexes from schema.sql."""
    schema = (
        resources.files("shop.repos.postgresql")
        .joinpath("schema.sql")
        .read_text(encoding="utf-8")
    )
    async with pool.acquire() as conn:
        await conn.execute(schema)
    logger.info("PostgreSQL schema applied")

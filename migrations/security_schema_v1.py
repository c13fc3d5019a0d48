"""
Security schema v1 migration

Creates the schema and every table that does not exist yet, then converts a
legacy binary roles.name column (bytea holding UTF-8) to text. Safe to re-run.

Run: python migrations/security_schema_v1.py
"""
import asyncio
import logging

from sqlalchemy import text

from security_api.core.config import settings
from security_api.core.database import Database, metadata
import security_api.models  # noqa: F401  (registers tables on the metadata)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def convert_role_names(database: Database) -> None:
    """One-time bytea -> varchar conversion of roles.name."""
    schema = metadata.schema or "public"

    async with database.engine.begin() as conn:
        result = await conn.execute(
            text("""
                SELECT data_type
                FROM information_schema.columns
                WHERE table_schema = :schema
                AND table_name = 'roles'
                AND column_name = 'name'
            """),
            {"schema": schema},
        )
        data_type = result.scalar()

        if data_type is None:
            logger.info("roles.name not found - skipping conversion")
            return
        if data_type != "bytea":
            logger.info(f"roles.name is already {data_type} - nothing to convert")
            return

        await conn.execute(text(f"""
            ALTER TABLE "{schema}".roles
            ALTER COLUMN name TYPE VARCHAR(100)
            USING convert_from(name, 'UTF8')
        """))
        logger.info("roles.name converted from bytea to VARCHAR(100)")


async def migrate() -> None:
    database = Database.from_settings(settings)
    try:
        logger.info("Creating schema and missing tables...")
        await database.create_all()
        logger.info("  ✓ tables")

        if database.engine.dialect.name == "postgresql":
            await convert_role_names(database)
        else:
            logger.info(f"Dialect {database.engine.dialect.name}: no role name conversion needed")
    finally:
        await database.dispose()

    logger.info("Migration complete")


if __name__ == "__main__":
    asyncio.run(migrate())

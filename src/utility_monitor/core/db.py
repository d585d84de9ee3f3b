"""Database configuration for Tortoise-ORM and aerich."""

import logging
import os

from dotenv import load_dotenv
from tortoise import Tortoise

load_dotenv()

logger = logging.getLogger(__name__)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite://utility_monitor.sqlite3")
MODEL_MODULES = ["utility_monitor.core.models"]


TORTOISE_ORM = {
    "connections": {"default": DATABASE_URL},
    "apps": {
        "models": {
            "models": [*MODEL_MODULES, "aerich.models"],
            "default_connection": "default",
        },
    },
}


async def init_db(generate_schemas: bool = False) -> None:
    """
    Opens the database connection.

    The schema is normally managed by aerich migrations; ``generate_schemas``
    creates missing tables directly, e.g. for a throwaway SQLite file.
    """
    await Tortoise.init(config=TORTOISE_ORM)
    if generate_schemas:
        await Tortoise.generate_schemas(safe=True)
    logger.info(f"Database initialized ({DATABASE_URL.split('://', 1)[0]})")


async def close_db() -> None:
    await Tortoise.close_connections()

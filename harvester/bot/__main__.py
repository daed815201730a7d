"""
harvester.bot.__main__ — Entry point for ``python -m harvester.bot``
====================================================================

Wiring:
1. Load .env (secrets).
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Seed the role catalog from config (idempotent).
5. Create the HarvesterBot and run it (blocking).

Run with::

    python -m harvester.bot
"""

from __future__ import annotations

import logging
import os
import sys

from dotenv import load_dotenv

from harvester.bot.core import HarvesterBot
from harvester.config import load_config
from harvester.database.engine import create_db_engine, init_db
from harvester.database.seed import seed_role_catalog

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("harvester")


def main() -> None:
    """Bootstrap and run the Harvester bot."""
    load_dotenv()

    token = os.getenv("DISCORD_TOKEN")
    if not token or token == "your-discord-bot-token-here":
        logger.critical(
            "DISCORD_TOKEN is not set.  "
            "Copy .env.example → .env and paste your bot token."
        )
        sys.exit(1)

    cfg = load_config()
    logger.info("Config loaded — Community: %s", cfg.community_name)

    engine = create_db_engine()
    init_db(engine)

    if cfg.roles:
        seed_role_catalog(engine, cfg.roles)

    bot = HarvesterBot(cfg=cfg, engine=engine)

    logger.info("Starting Harvester bot…")
    try:
        bot.run(token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()

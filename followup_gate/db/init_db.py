"""
Initialize database tables
Run this once to create tables:  python -m followup_gate.db.init_db
"""

import asyncio
import logging

from followup_gate.config import settings
from followup_gate.db.database import init_db


if __name__ == "__main__":
    logging.basicConfig(level=settings.LOG_LEVEL)
    logging.getLogger(__name__).info("Creating database tables...")
    asyncio.run(init_db())

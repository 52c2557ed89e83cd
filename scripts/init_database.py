#!/usr/bin/env python3
"""
Initialize database tables from SQLAlchemy models.

Creates the players and rating_history tables if they are missing.
"""
import sys
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.core.config import settings
from app.core.logging import configure_logging, get_logger

configure_logging(level=settings.LOG_LEVEL, json_output=False)
logger = get_logger(__name__)


def main():
    """Create all database tables from models."""
    from app.core.database import init_db

    logger.info("Creating database tables from SQLAlchemy models...")
    init_db()
    logger.info("✓ All database tables created successfully!")


if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""Setup script for the travel booking API: migrate, then seed sample data."""

import asyncio
import logging
import os
import sys
from datetime import timedelta
from pathlib import Path

# Add the server directory to the Python path
server_dir = Path(__file__).parent.parent / "server"
sys.path.insert(0, str(server_dir))

from alembic import command
from alembic.config import Config
from sqlalchemy import func, select

from travel_booking.core.database import async_session_factory, close_db, utcnow
from travel_booking.core.security import hash_password
from travel_booking.models import TravelPackage, User, UserRole, UserStatus

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def migrate_database() -> None:
    """Run Alembic migrations up to head."""
    alembic_cfg = Config(str(server_dir / "db" / "alembic.ini"))
    alembic_cfg.set_main_option("script_location", str(server_dir / "db" / "alembic"))

    logger.info("Running database migrations...")
    command.upgrade(alembic_cfg, "head")
    logger.info("Database migrations completed")


async def create_sample_data() -> None:
    """Create an admin account and a sample package if the database is empty."""
    admin_email = os.environ.get("ADMIN_EMAIL", "admin@travel-booking.example.com")
    admin_password = os.environ.get("ADMIN_PASSWORD")

    async with async_session_factory() as db:
        try:
            existing_users = await db.execute(select(func.count()).select_from(User))
            if existing_users.scalar() > 0:
                logger.info("Sample data already exists, skipping...")
                return

            if not admin_password:
                logger.warning("ADMIN_PASSWORD not set, skipping admin account")
            else:
                db.add(User(
                    email=admin_email.lower(),
                    first_name="Site",
                    last_name="Admin",
                    role=UserRole.ADMIN,
                    status=UserStatus.ACTIVE,
                    email_verified=True,
                    password_hash=hash_password(admin_password),
                ))

            start = utcnow() + timedelta(days=30)
            db.add(TravelPackage(
                destination="Reykjavik, Iceland",
                description="Five nights chasing the Northern Lights with expert guides",
                start_date=start,
                end_date=start + timedelta(days=5),
                price_amount=129900,  # $1,299.00 per room
                price_currency="USD",
                available_rooms=20,
                max_guests=4,
            ))

            await db.commit()
            logger.info("Sample data created successfully!")

        except Exception as e:
            await db.rollback()
            logger.error(f"Failed to create sample data: {e}")
            raise

    await close_db()


def main() -> None:
    """Main setup function."""
    logger.info("Starting travel booking API setup...")

    # Alembic's env runs its own event loop, so migrate before entering ours
    migrate_database()
    asyncio.run(create_sample_data())

    logger.info("Setup completed successfully!")
    logger.info("You can now start the API server with: cd server && uvicorn travel_booking.main:app --reload")


if __name__ == "__main__":
    main()

"""Background worker for completing bookings after travel."""

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.database import async_session_factory, utcnow
from ..services.booking_service import BookingService
from .base import BaseWorker

logger = logging.getLogger(__name__)


class BookingCompletionWorker(BaseWorker):
    """
    Background worker that completes bookings whose travel has ended.

    Each iteration opens its own session and moves every CONFIRMED booking
    whose package end date has passed to COMPLETED.
    """

    def __init__(
        self,
        interval_seconds: int = 3600,
        session_factory: Optional[async_sessionmaker[AsyncSession]] = None,
    ):
        super().__init__(name="BookingCompletion", interval_seconds=interval_seconds)
        self.session_factory = session_factory or async_session_factory
        self.last_completed_count = 0

    async def process(self) -> None:
        async with self.session_factory() as db:
            try:
                now = utcnow()
                completed = await BookingService(db).complete_finished_bookings(now)
                self.last_completed_count = completed

                if completed > 0:
                    logger.info(
                        "Bookings completed",
                        extra={
                            "completed_count": completed,
                            "timestamp": now.isoformat(),
                            "worker": self.name,
                        }
                    )
            except Exception:
                await db.rollback()
                raise

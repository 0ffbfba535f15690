# orgpark/services/activation_sweeper.py
"""
Background sweep that activates confirmed bookings once their start time passes.

Runs alongside watchman scans: both go through the same idempotent
booking_lifecycle.activate(), so whichever arrives second is a no-op.
Started once from main.py at backend startup.
"""

import asyncio

from orgpark.database import SessionLocal
from orgpark.services import booking_orchestrator
from orgpark.utils.logger import get_logger

logger = get_logger(__name__)


def sweep_once(session_factory=SessionLocal) -> int:
    """One pass with a fresh DB session. Returns the number of activated bookings."""
    db = session_factory()
    try:
        return booking_orchestrator.auto_activate_due(db)
    finally:
        db.close()


async def run_activation_sweeper(interval_seconds: int, session_factory=SessionLocal):
    """Loop forever; a failing pass is logged and retried on the next tick."""
    logger.info(f"🔁 Activation sweeper running every {interval_seconds}s")
    while True:
        try:
            await asyncio.to_thread(sweep_once, session_factory)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[SWEEP] pass failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)

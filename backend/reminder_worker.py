"""
Reminder worker entrypoint.

Usage (from backend/):
  python reminder_worker.py
"""
import asyncio
import logging
import signal
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables before any module reads its settings
ROOT_DIR = Path(__file__).parent
load_dotenv(ROOT_DIR / '.env')

from database import database
from services.reminder_engine import build_reminder_engine
from services.reminder_policies import load_policies
from services.reminder_scheduler import ReminderScheduler
from services.reminder_windows import get_reminder_timezone
from services.telegram_service import telegram_service

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main():
    logger.info("Starting reminder worker")
    await database.connect()

    if not telegram_service.is_configured():
        logger.warning("TELEGRAM_BOT_TOKEN is not set. Reminders will be counted as failed until it is configured.")

    policies = load_policies()
    engine = build_reminder_engine(database.get_db(), telegram_service)
    reminder_scheduler = ReminderScheduler(engine, policies)
    logger.info(
        f"Reminder policies: {', '.join(p.name for p in policies)} (timezone: {get_reminder_timezone()})"
    )

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers; Ctrl+C still raises KeyboardInterrupt
            pass

    reminder_scheduler.start()
    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down reminder worker")
        reminder_scheduler.shutdown()
        await telegram_service.close()
        await database.close()


if __name__ == "__main__":
    asyncio.run(main())

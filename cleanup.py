"""
Remove classes that have already ended. Their bookings go with them.
- delete_past_classes(): one pass, also what `python cleanup.py` runs.
- run_periodic_cleanup(): background loop started by the app when
  CLEANUP_INTERVAL_HOURS > 0.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

import config
import databases_sql as db
from utils import utc_now, to_utc_iso

logger = logging.getLogger("booking_api.cleanup")


def delete_past_classes(now: Optional[datetime] = None):
    now = now or utc_now()
    removed = db.delete_classes_ended_before(to_utc_iso(now))
    logger.info("Deleted %d past classes", len(removed))
    for cls in removed:
        logger.info("Deleted class %s (%s), ended %s", cls["id"], cls["title"], cls["end_utc"])
    return removed


async def run_periodic_cleanup(interval_hours: float):
    while True:
        try:
            await asyncio.to_thread(delete_past_classes)
        except Exception:
            logger.exception("Cleanup of past classes failed")
        await asyncio.sleep(interval_hours * 60 * 60)


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL)
    db.init_db()
    delete_past_classes()

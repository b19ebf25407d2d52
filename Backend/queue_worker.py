"""
Video queue drain worker.

Each pass takes up to QUEUE_BATCH_SIZE pending rows (oldest first, retry_count
below QUEUE_SELECT_MAX_RETRIES) and translates them one at a time. A rate
limit from the provider puts the current row back to pending and ends the
pass; any other failure is counted against the row's max_retries.
"""

import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime

import config
import database
import gemini_client
from errors import NoResultError, RateLimitedError

logger = logging.getLogger(__name__)


@dataclass
class DrainResult:
    selected: int = 0
    processed: int = 0
    rate_limited: bool = False
    skipped: int = 0

    @property
    def remaining(self):
        return self.selected - self.processed

    def to_response(self):
        if self.selected == 0:
            message = "No pending items in queue"
        else:
            message = f"Processed {self.processed} videos"
        return {
            "message": message,
            "processed": self.processed,
            "rateLimited": self.rate_limited,
            "remaining": self.remaining,
        }


def _record(item_id, message, **fields):
    """Writes the item update and its event line. DB failures are logged, not retried."""
    try:
        if fields:
            database.update_queue_item(item_id, **fields)
        database.log_event(item_id, message)
    except sqlite3.Error as e:
        logger.error(f"[Queue {item_id}] Failed to save update ({message}): {e}")


def process_item(item, api_key, translate):
    """
    Runs one claimed item through the provider and records the outcome.

    Returns "completed", "rate_limited" or "failed_attempt".
    """
    item_id = item["id"]
    logger.info(f"[Queue {item_id}] Processing ({item['file_name']})")

    try:
        translation = translate(item["video_data"], api_key)
        if not translation:
            raise NoResultError("No translation generated")
    except RateLimitedError:
        _record(
            item_id,
            "Rate limited, returned to queue",
            status="pending",
            retry_count=item["retry_count"] + 1,
            error_message=config.RATE_LIMIT_MESSAGE,
        )
        logger.warning(f"[Queue {item_id}] Rate limited, stopping processing. Item will retry.")
        return "rate_limited"
    except Exception as e:  # any provider failure counts as an attempt
        new_retry_count = item["retry_count"] + 1
        status = "failed" if new_retry_count >= item["max_retries"] else "pending"
        _record(
            item_id,
            f"Attempt {new_retry_count} failed ({status}): {e}",
            status=status,
            retry_count=new_retry_count,
            error_message=str(e),
        )
        logger.error(f"[Queue {item_id}] Error processing: {e}")
        return "failed_attempt"

    _record(
        item_id,
        "Translation completed",
        status="completed",
        khmer_translation=translation,
        processed_at=datetime.now().isoformat(),
        error_message=None,
    )
    logger.info(f"[Queue {item_id}] Successfully processed")
    return "completed"


def drain_queue(settings, translate=None, batch_size=config.QUEUE_BATCH_SIZE):
    """
    Runs one pass over the queue.

    Raises ConfigError before touching any row when the Google key is missing.
    """
    api_key = settings.require("google_api_key")
    translate = translate or gemini_client.translate_video_to_khmer

    items = database.get_pending_items(limit=batch_size, max_retry_count=config.QUEUE_SELECT_MAX_RETRIES)
    result = DrainResult(selected=len(items))
    if not items:
        return result

    logger.info(f"Processing {len(items)} queued videos")

    for item in items:
        try:
            claimed = database.claim_queue_item(item["id"], retry_count=item["retry_count"])
        except sqlite3.Error as e:
            logger.error(f"[Queue {item['id']}] Claim failed: {e}")
            claimed = False
        if not claimed:
            # Another pass claimed or already retried it since selection
            result.skipped += 1
            continue

        outcome = process_item(item, api_key, translate)
        if outcome == "completed":
            result.processed += 1
        elif outcome == "rate_limited":
            result.rate_limited = True
            break

    logger.info(
        f"Queue pass done: processed={result.processed}, rate_limited={result.rate_limited}, "
        f"skipped={result.skipped}"
    )
    return result

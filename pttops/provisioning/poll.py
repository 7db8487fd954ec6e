"""Fixed-interval retry loop for waiting out asynchronous provider and host state."""

import asyncio
import logging
from datetime import datetime

from pttops.errors import PollTimeoutError

logger = logging.getLogger(__name__)

# Readiness polls (endpoints, file staging, kots plugin)
RETRY_INTERVAL = 20
# Stack status watch loops (create, delete)
STATUS_INTERVAL = 10


def format_minutes(seconds):
    """Render a duration the way the pipelines report it."""
    return f"{seconds / 60:f} minutes"


async def retry_until(operation, timeout_minutes, interval=RETRY_INTERVAL):
    """Call `operation` every `interval` seconds until it stops raising.

    Every exception from the operation means "not ready yet": it is logged
    with a wall-clock timestamp and the loop keeps going. Attempts never
    overlap. The attempt loop races the timeout; when the timeout wins the
    in-flight attempt is abandoned.

    Returns:
        Elapsed seconds from the start of the loop to the first success.

    Raises:
        PollTimeoutError: the operation did not succeed within the budget.
            Its `elapsed` attribute holds the time spent.
    """
    loop = asyncio.get_running_loop()
    start = loop.time()

    async def _attempts():
        while True:
            await asyncio.sleep(interval)
            try:
                await operation()
            except Exception as e:
                logger.info(f"  {datetime.now():%H:%M:%S} {e}.")
                continue
            return

    try:
        await asyncio.wait_for(_attempts(), timeout=timeout_minutes * 60)
    except TimeoutError:
        # the event loop may fire timers up to one clock tick early
        elapsed = max(loop.time() - start, timeout_minutes * 60)
        raise PollTimeoutError(f"Timeout exceeded after {format_minutes(elapsed)}", elapsed=elapsed) from None

    return loop.time() - start

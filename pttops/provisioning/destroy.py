"""Destruction pipeline: delete a stack, wait for it to vanish, drop CA trust."""

import logging

from pttops.errors import OpsError
from pttops.provisioning.poll import STATUS_INTERVAL, format_minutes, retry_until
from pttops.provisioning.trust import untrust_ca

logger = logging.getLogger(__name__)

DELETE_TIMEOUT_MINUTES = 10


async def wait_for_deletion(stack, timeout_minutes=DELETE_TIMEOUT_MINUTES, interval=STATUS_INTERVAL):
    """Poll until describing the stack fails. Returns elapsed seconds.

    Any describe error counts as "gone", not only not-found.
    """
    logger.info("Checking Status")

    async def _gone():
        try:
            status = await stack.status()
        except Exception:
            logger.info("  DELETE_COMPLETE")
            return
        raise OpsError(status)

    elapsed = await retry_until(_gone, timeout_minutes, interval=interval)
    logger.info(f"Stack Deletion took {format_minutes(elapsed)}.")
    return elapsed


async def destroy(stack, interactive=True, untrust=untrust_ca, interval=STATUS_INTERVAL):
    """Delete `stack`. Returns elapsed seconds of the deletion wait."""
    name = stack.name
    outputs = await stack.outputs()
    ca_host = outputs.get("CA", "")

    logger.info(f'Deleting Stack "{name}".')
    await stack.delete()

    elapsed = await wait_for_deletion(stack, interval=interval)

    if not interactive:
        logger.info(f"Skipping CA trust removal for {ca_host} in non-interactive mode.")
        return elapsed
    try:
        await untrust(ca_host)
    except OSError as e:
        logger.error(f"error deleting trust for cert: {ca_host}: {e}\nYou may have to do it manually.")
    return elapsed

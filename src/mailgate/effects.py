# =============================================================================
# Best-Effort Actions
# =============================================================================
# Some side effects must never fail the operation they ride along with:
#   - marking a message read after the user has already received its content
#   - saving a copy to the Sent mailbox after the message was delivered
#
# Rather than sprinkling try/except around those call sites, they go through
# best_effort(), which runs the action, logs any failure, and reports the
# outcome as a boolean. Cancellation is not absorbed: if the surrounding
# task is cancelled, that still propagates.
# =============================================================================

import logging
from typing import Awaitable

logger = logging.getLogger(__name__)


async def best_effort(description: str, action: Awaitable[object]) -> bool:
    """
    Await an action whose failure must not propagate.

    Args:
        description: What the action does, for the log line.
        action: The awaitable to run.

    Returns:
        True if the action completed, False if it raised.
    """
    try:
        await action
    except Exception as e:
        logger.warning(f"Best-effort action failed ({description}): {e}")
        return False

    logger.debug(f"Best-effort action completed: {description}")
    return True

"""
Fire-and-forget wrapper for side effects that must never fail the primary operation
(audit rows, flag mirroring, job scheduling, notifications).
"""
import logging
from typing import Any, Awaitable, Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


async def best_effort(
    db: AsyncSession,
    label: str,
    func: Callable[..., Awaitable[Any]],
    *args,
    **kwargs
) -> Optional[Any]:
    """
    Run `func` inside a SAVEPOINT. On failure the savepoint is rolled back,
    the error is logged and None is returned; the outer transaction stays usable.

    Args:
        db: Session the side effect writes through
        label: Short name used in the log line
        func: Async callable performing the side effect

    Returns:
        Whatever `func` returned, or None if it raised
    """
    try:
        async with db.begin_nested():
            return await func(*args, **kwargs)
    except Exception as e:
        logger.warning(f"Best-effort step '{label}' failed: {e}", exc_info=True)
        return None

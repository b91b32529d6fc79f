"""
Ordered fallback helper.

Source fetching and context retrieval both try a list of progressively
cheaper or broader strategies and keep the first one that produces
something. Each strategy is a named zero-argument coroutine factory; a
strategy that raises is logged and skipped.
"""

import logging
from typing import Awaitable, Callable, Iterable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

Attempt = Tuple[str, Callable[[], Awaitable[Optional[T]]]]


async def first_result(
    attempts: Iterable[Attempt],
    accept: Callable[[T], bool] = bool,
) -> Optional[T]:
    """
    Run attempts in order and return the first accepted result.

    Args:
        attempts: (name, coroutine factory) pairs, tried strictly in sequence
        accept: Predicate deciding whether a non-None result counts

    Returns:
        The first accepted result, or None when every attempt came up empty
    """
    for name, attempt in attempts:
        try:
            result = await attempt()
        except Exception as e:
            logger.warning("%s failed: %s", name, e)
            continue

        if result is not None and accept(result):
            return result
        logger.debug("%s returned no results", name)

    return None

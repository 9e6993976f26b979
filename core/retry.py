"""
Bounded retry for units of work that lose a concurrency race.

A ConflictError means the whole transaction was rolled back, so the unit of
work is re-run from scratch in a fresh transaction: it re-reads everything
and re-decides. Any other error propagates on the first attempt.
"""

import logging
from typing import Callable, TypeVar

from core.exceptions import ConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_conflict_retry(
    unit_of_work: Callable[[], T],
    max_retries: int,
    operation: str,
) -> T:
    """
    Run unit_of_work, retrying up to max_retries more times on ConflictError.

    Raises:
        ConflictError: The last conflict, once the retry budget is spent
    """
    attempt = 0
    while True:
        try:
            return unit_of_work()
        except ConflictError:
            if attempt >= max_retries:
                logger.error(
                    "%s: conflict persisted after %d attempts, giving up",
                    operation, attempt + 1
                )
                raise
            attempt += 1
            logger.warning(
                "%s: concurrent update, retrying (%d/%d)",
                operation, attempt, max_retries
            )

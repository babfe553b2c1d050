import asyncio
import logging
import random
from contextlib import contextmanager
from typing import Awaitable, Callable, TypeVar

from sqlalchemy.exc import DBAPIError

from storefront.config import settings
from storefront.domain.exceptions import ConcurrencyConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# serialization_failure, deadlock_detected
_CONFLICT_SQLSTATES = {"40001", "40P01"}
CONFLICT_MESSAGE = "Concurrent update conflict. Please try again."


def is_write_conflict(error: Exception) -> bool:
    """Конфликт параллельной записи, который имеет смысл повторить."""
    if isinstance(error, ConcurrencyConflictError):
        return True
    if isinstance(error, DBAPIError):
        orig = error.orig
        sqlstate = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
        if sqlstate in _CONFLICT_SQLSTATES:
            return True
        return "database is locked" in str(orig)
    return False


@contextmanager
def write_conflicts_as_domain_error():
    """Deadlock и serialization failure из БД превращаются в ConcurrencyConflictError (409)."""
    try:
        yield
    except DBAPIError as e:
        if not is_write_conflict(e):
            raise
        logger.warning(f"Конфликт записи в БД: {e.orig}")
        raise ConcurrencyConflictError(CONFLICT_MESSAGE) from e


async def retry_on_conflict(
    operation: Callable[[], Awaitable[T]],
    is_conflict: Callable[[Exception], bool] = is_write_conflict,
    attempts: int | None = None,
    base_delay: float = 0.05,
) -> T:
    """Повторяет operation при конфликте записи, не более attempts раз.

    Между попытками экспоненциальная задержка со случайным разбросом.
    После последней неудачи наружу уходит ConcurrencyConflictError.
    """
    attempts = attempts or settings.CONFLICT_RETRY_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except Exception as e:
            if not is_conflict(e):
                raise
            if attempt == attempts:
                logger.warning(f"Конфликт записи не разрешился после {attempts} попыток: {e}")
                raise ConcurrencyConflictError(CONFLICT_MESSAGE) from e
            delay = base_delay * (2 ** (attempt - 1)) * random.uniform(0.5, 1.5)
            logger.info(f"Конфликт записи (попытка {attempt}/{attempts}), повтор через {delay:.3f}s")
            await asyncio.sleep(delay)
    raise ValueError("attempts must be positive")

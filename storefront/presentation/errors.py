import logging
from contextlib import contextmanager

from fastapi import HTTPException, status

from storefront.config import settings
from storefront.domain.exceptions import (
    DomainException, InvalidInputError, LimitExceededError, NotFoundError,
    ForbiddenError, ConflictError, InvalidStateError
)

logger = logging.getLogger(__name__)

_STATUS_CODES = (
    (InvalidInputError, status.HTTP_400_BAD_REQUEST),
    (LimitExceededError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (ConflictError, status.HTTP_409_CONFLICT),
    (InvalidStateError, status.HTTP_400_BAD_REQUEST),
)


def status_code_for(error: DomainException) -> int:
    for error_type, code in _STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


@contextmanager
def http_errors(action: str):
    """Переводит доменные ошибки в HTTP-ответы, прочие исключения в 500."""
    try:
        yield
    except HTTPException:
        raise
    except DomainException as e:
        code = status_code_for(e)
        logger.info(f"{action}: {type(e).__name__}: {e}")
        raise HTTPException(status_code=code, detail=str(e))
    except Exception as e:
        logger.error(f"Ошибка ({action}): {e}", exc_info=True)
        detail = f"Server error {action}: {e}" if settings.is_development else f"Server error {action}"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail)

"""Helpers shared by the v1 routers."""

import logging
from typing import Any, Dict, NoReturn

from fastapi import HTTPException, status

from ...core.exceptions import DomainException, RepositoryException
from ...schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)

ULID_PATH_PATTERN = r"^[0-9A-HJKMNP-TV-Z]{26}$"

ERROR_RESPONSES: Dict[int | str, Dict[str, Any]] = {
    400: {"model": ErrorResponse, "description": "Validation, availability or precondition failure"},
    403: {"model": ErrorResponse, "description": "Not allowed for this user"},
    404: {"model": ErrorResponse, "description": "Unknown resource"},
    409: {"model": ErrorResponse, "description": "Scheduling conflict"},
}


def handle_domain_exception(exc: DomainException) -> NoReturn:
    """Convert domain exceptions to HTTP exceptions."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}", extra={"details": exc.details})
    raise exc.to_http_exception()


def handle_repository_exception(exc: RepositoryException) -> NoReturn:
    logger.error(f"Data access failure: {exc}", exc_info=True)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"message": "An internal error occurred", "code": "INTERNAL_ERROR", "details": {}},
    )

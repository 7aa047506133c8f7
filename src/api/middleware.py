"""Rate limiting (slowapi) and domain-error rendering."""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.domain.errors import DomainError

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    """Render any ``DomainError`` as ``{code, message, details}``."""
    if exc.status_code >= 500:
        logger.error("Domain error %s on %s: %s", exc.code, request.url.path, exc.message)
    else:
        logger.info("Rejected %s %s: %s", request.method, request.url.path, exc.code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

from typing import Annotated, Optional
import logging
import secrets

from fastapi import Depends, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from wms_billing.config import settings


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme; missing headers are answered by verify_cron_secret
security = HTTPBearer(auto_error=False)


class CronAuthError(Exception):
    """Cron trigger rejected before any work was done."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def cron_auth_exception_handler(request: Request, exc: CronAuthError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def verify_cron_secret(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(security)],
) -> None:
    """
    Dependency guarding cron triggers with `Authorization: Bearer <CRON_SECRET>`.

    Without a configured secret every trigger is refused with 500, so a
    misconfigured deployment can never run jobs unauthenticated.
    """
    if not settings.CRON_SECRET:
        logger.error("CRON_SECRET is not configured; refusing cron trigger")
        raise CronAuthError(500, "Server misconfigured")

    token = credentials.credentials if credentials else ""
    if not secrets.compare_digest(token.encode(), settings.CRON_SECRET.encode()):
        logger.warning("Cron trigger rejected: invalid or missing bearer token")
        raise CronAuthError(401, "Unauthorized")


CronAuthorized = Depends(verify_cron_secret)

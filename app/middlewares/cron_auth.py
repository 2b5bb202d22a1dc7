import secrets

from fastapi import Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from app.config.settings import settings
from app.utils.errors import AuthenticationError
from app.utils.logging import get_logger

logger = get_logger()


class CronSecretBearer(HTTPBearer):
    """Bearer check for cron and operator endpoints against CRON_SECRET"""

    def __init__(self):
        super().__init__(auto_error=False)

    async def __call__(  # type: ignore[override]
        self, request: Request
    ) -> Optional[HTTPAuthorizationCredentials]:
        # An empty secret disables the check (local development)
        if not settings.CRON_SECRET:
            return None

        credentials = await super().__call__(request)
        if not credentials:
            logger.warning(f"Missing cron credentials on {request.url.path}")
            raise AuthenticationError(
                "Invalid authorization credentials", "INVALID_CREDENTIALS"
            )

        if not credentials.scheme == "Bearer":
            raise AuthenticationError("Invalid authentication scheme", "INVALID_SCHEME")

        if not secrets.compare_digest(credentials.credentials, settings.CRON_SECRET):
            logger.warning(f"Rejected cron secret on {request.url.path}")
            raise AuthenticationError("Invalid cron secret", "INVALID_CRON_SECRET")

        return credentials


require_cron_secret = CronSecretBearer()

import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from app.utils.context import set_request_id

REQUEST_ID_HEADER = "X-Request-ID"


def _incoming_request_id(request: Request) -> Optional[str]:
    """Accept a caller supplied request ID only when it is a valid UUID."""
    try:
        return str(uuid.UUID(request.headers.get(REQUEST_ID_HEADER)))
    except (ValueError, TypeError):
        return None


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # Context variable gives the logger access to the ID
        request_id = set_request_id(_incoming_request_id(request))
        request.state.request_id = request_id

        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

import uuid
from contextvars import ContextVar
from typing import Optional

request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context."""
    return request_id_context.get()


def set_request_id(request_id: Optional[str] = None) -> str:
    """Set the request ID in context, generating one when none is given."""
    request_id = request_id or str(uuid.uuid4())
    request_id_context.set(request_id)
    return request_id

"""Request ID propagation for log correlation.

The request ID lives in a ContextVar so it follows the request across awaits.
Inbound webhook calls carry the mail provider's retry-free delivery, so the
request ID is the only handle for tracing a dropped message through the logs.
"""

import uuid
from contextvars import ContextVar, Token
from typing import Optional

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def generate_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> str:
    """Current request ID, or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str) -> Token:
    """Set the request ID for the current context; returns the reset token."""
    return request_id_var.set(request_id)


def reset_request_id(token: Token) -> None:
    request_id_var.reset(token)

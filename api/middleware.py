"""Actor middleware using ContextVar.

Reads the acting user from the X-User-ID request header and stores it in
a ContextVar, so audit events and condition records can be attributed
without threading the actor through every call.
"""

from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# ---------------------------------------------------------------------------
# Context variable
# ---------------------------------------------------------------------------

_current_actor: ContextVar[str] = ContextVar("current_actor", default="system")


def get_current_actor() -> str:
    """Return the acting user for the current request ("system" if unknown)."""
    return _current_actor.get()


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------

class ActorMiddleware(BaseHTTPMiddleware):
    """Set the current actor from the X-User-ID header."""

    async def dispatch(self, request: Request, call_next) -> Response:
        actor = request.headers.get("X-User-ID", "").strip()
        token = _current_actor.set(actor or "system")
        try:
            return await call_next(request)
        finally:
            _current_actor.reset(token)

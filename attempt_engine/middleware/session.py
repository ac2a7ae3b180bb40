# FILE: attempt_engine/middleware/session.py
"""
Session resolution middleware
"""
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

logger = logging.getLogger(__name__)


class SessionMiddleware(BaseHTTPMiddleware):
    """
    Copies the authenticated user id, set by the upstream auth proxy in
    ``header_name``, onto ``request.state.user_id``. A missing header leaves
    it as None; the engine answers that with an authentication error.
    """

    def __init__(self, app, header_name: str):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next):
        user_id = request.headers.get(self.header_name)
        request.state.user_id = user_id.strip() if user_id and user_id.strip() else None

        if request.state.user_id is None and request.url.path.startswith("/attempts"):
            logger.debug(f"No session header on {request.method} {request.url.path}")

        response = await call_next(request)
        return response

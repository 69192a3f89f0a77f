# core/route_guard.py

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse

from core.logging_config import logger
from core.route_access import decide, needs_session
from dependencies import auth


class RouteGuardMiddleware(BaseHTTPMiddleware):
    """
    Page gate: loads the session (only when the path needs it), applies the
    route table decision and either forwards the request or redirects.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        session = None

        if needs_session(path):
            session = await run_in_threadpool(auth.load_session, request)
            request.state.session = session

        role = session.role if session else None
        decision = decide(path, role)

        if not decision.allowed:
            logger.info(f"Gate redirect {path} -> {decision.redirect_to} ({decision.reason})")
            return RedirectResponse(decision.redirect_to, status_code=307)

        return await call_next(request)

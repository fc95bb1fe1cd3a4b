"""
HTTP transport for the session store.

A thin aiohttp application mapping paths and methods onto store operations:

    GET    /api/session/{key}   read a session (octet-stream body)
    POST   /api/session/{key}   write a session (streamed request body)
    DELETE /api/session/{key}   delete a session
    GET    /api/sessions        list the tenant's keys

The key is everything after "/api/session/", so it may contain "/".
Authentication is delegated to the ``authenticate`` callable, which turns an
Authorization header into a tenant id (or None). Browsers are redirected to
the project page.

Example with aiohttp:
    >>> app = create_app(store, authenticate)
    >>> web.run_app(app, port=8080)
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from aiohttp import web

from .exceptions import (
    QuotaExceededError,
    SessionOutcome,
    SessionStorageError,
    SessionValidationError,
    StorageIOError,
)
from .store import SessionStore

logger = logging.getLogger(__name__)

Authenticator = Callable[[str | None], Awaitable[int | None]]

DEFAULT_REDIRECT_URL = "https://grammy.dev"
READ_CHUNK_SIZE = 4096

STORE_KEY = web.AppKey("store", SessionStore)
AUTHENTICATE_KEY = web.AppKey("authenticate", Callable[[str | None], Awaitable[int | None]])

# Status codes per outcome; transport-specific, the store only knows outcomes
OUTCOME_STATUS: dict[SessionOutcome, int] = {
    SessionOutcome.NOT_FOUND: 404,
    SessionOutcome.KEY_TOO_LONG: 400,
    SessionOutcome.PAYLOAD_TOO_LARGE: 413,
    SessionOutcome.QUOTA_EXCEEDED: 507,
    SessionOutcome.WRITTEN: 201,
    SessionOutcome.DELETED: 200,
}


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _wants_html(request: web.Request) -> bool:
    accept = request.headers.get("Accept")
    if not accept:
        return False
    return "text/html" in (part.strip() for part in accept.split(","))


def _make_error_middleware(redirect_url: str):
    @web.middleware
    async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
        if _wants_html(request):
            raise web.HTTPMovedPermanently(location=redirect_url)
        try:
            return await handler(request)
        except web.HTTPException as e:
            if e.status < 400:
                raise
            return _error(e.status, (e.reason or "error").lower())
        except StorageIOError as e:
            logger.warning(f"Storage unavailable: {e.message}", extra={"details": e.details})
            return _error(503, "storage unavailable")

    return error_middleware


async def _authenticate(request: web.Request) -> int:
    tenant_id = await request.app[AUTHENTICATE_KEY](request.headers.get("Authorization"))
    if tenant_id is None:
        raise web.HTTPUnauthorized(reason="unauthorized")
    return tenant_id


def _rejection(error: SessionStorageError) -> web.Response:
    outcome = getattr(error, "outcome", None)
    status = OUTCOME_STATUS.get(outcome, 400) if outcome else 400
    return _error(status, error.message)


async def read_session(request: web.Request) -> web.StreamResponse:
    tenant_id = await _authenticate(request)
    key = request.match_info.get("key", "")
    data = await request.app[STORE_KEY].read_session(tenant_id, key)
    if data is None:
        return _error(OUTCOME_STATUS[SessionOutcome.NOT_FOUND], "not found")
    return web.Response(body=data, content_type="application/octet-stream")


async def write_session(request: web.Request) -> web.StreamResponse:
    tenant_id = await _authenticate(request)
    key = request.match_info.get("key", "")
    if not request.body_exists:
        return _error(400, "missing body")
    try:
        outcome = await request.app[STORE_KEY].write_session(
            tenant_id, key, request.content.iter_chunked(READ_CHUNK_SIZE)
        )
    except (SessionValidationError, QuotaExceededError) as e:
        return _rejection(e)
    return web.json_response({"status": outcome.value}, status=OUTCOME_STATUS[outcome])


async def delete_session(request: web.Request) -> web.StreamResponse:
    tenant_id = await _authenticate(request)
    key = request.match_info.get("key", "")
    outcome = await request.app[STORE_KEY].delete_session(tenant_id, key)
    return web.json_response({"status": outcome.value}, status=OUTCOME_STATUS[outcome])


async def list_sessions(request: web.Request) -> web.StreamResponse:
    tenant_id = await _authenticate(request)
    keys = await request.app[STORE_KEY].list_session_keys(tenant_id)
    return web.json_response({"keys": sorted(keys)})


def create_app(
    store: SessionStore,
    authenticate: Authenticator,
    redirect_url: str = DEFAULT_REDIRECT_URL,
) -> web.Application:
    """Build the aiohttp application.

    Args:
        store: An initialized SessionStore, shared by all handlers
        authenticate: Maps an Authorization header to a tenant id, or None
        redirect_url: Where browsers (Accept: text/html) are sent

    Returns:
        The application, ready for web.run_app or a test server
    """
    app = web.Application(middlewares=[_make_error_middleware(redirect_url)])
    app[STORE_KEY] = store
    app[AUTHENTICATE_KEY] = authenticate

    for path in ("/api/session", "/api/session/{key:.*}"):
        app.router.add_get(path, read_session, allow_head=False)
        app.router.add_post(path, write_session)
        app.router.add_delete(path, delete_session)
    app.router.add_get("/api/sessions", list_sessions, allow_head=False)

    return app

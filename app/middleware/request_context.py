from __future__ import annotations
import logging
import time
from datetime import datetime, timezone
from fastapi import Request
from jwt import PyJWTError
from starlette.middleware.base import BaseHTTPMiddleware
from ..observability.logging import get_request_id, bind_record
from ..config import get_settings
from ..auth.jwt import verify_jwt, user_id_from_claims

S = get_settings()
log = logging.getLogger("app.request")


def _user_id(request: Request):
    token = request.cookies.get(S.SESSION_COOKIE_NAME)
    if not token:
        return None
    try:
        return user_id_from_claims(verify_jwt(token))
    except PyJWTError:
        # invalid/expired token is logged as anonymous
        return None


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        rid = get_request_id(request)
        start = time.perf_counter()
        timestamp = datetime.now(timezone.utc).isoformat()
        user_info = f"user_id={_user_id(request) or 'anonymous'}"

        try:
            response = await call_next(request)
        except Exception:
            dur_ms = int((time.perf_counter() - start) * 1000)
            rec = bind_record(logging.LogRecord(
                name=log.name, level=logging.ERROR, pathname=__file__, lineno=0,
                msg="unhandled_error", args=(), exc_info=None
            ), request_id=rid, extra=f"timestamp={timestamp} path={request.url.path} method={request.method} ms={dur_ms} {user_info}")
            log.handle(rec)
            raise

        dur_ms = int((time.perf_counter() - start) * 1000)
        response.headers[S.REQUEST_ID_HEADER] = rid
        rec = bind_record(logging.LogRecord(
            name=log.name, level=logging.INFO, pathname=__file__, lineno=0,
            msg="request", args=(), exc_info=None
        ), request_id=rid, extra=f"timestamp={timestamp} path={request.url.path} method={request.method} status={response.status_code} ms={dur_ms} {user_info}")
        log.handle(rec)
        return response

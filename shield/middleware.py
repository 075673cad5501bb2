# shield/middleware.py
import logging

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from .gate import Gate
from .models import InboundRequest
from .parsers import get_client_ip, serialize_body

logger = logging.getLogger(__name__)


class ShieldMiddleware(BaseHTTPMiddleware):
    """Run every request through the gate before the application sees it."""

    def __init__(self, app, gate: Gate):
        super().__init__(app)
        self.gate = gate

    async def dispatch(self, request: Request, call_next) -> Response:
        if not self.gate.enabled:
            return await call_next(request)

        try:
            inbound = await to_inbound_request(request)
            # blocklist refresh may hit the network, keep it off the event loop
            verdict = await run_in_threadpool(self.gate.inspect, inbound)
        except Exception:
            logger.exception("Request inspection failed, letting %s %s through",
                             request.method, request.url.path)
            return await call_next(request)

        if not verdict.allowed:
            return JSONResponse({"message": verdict.message}, status_code=verdict.status_code)
        return await call_next(request)


async def to_inbound_request(request: Request) -> InboundRequest:
    body = await request.body()
    return InboundRequest(
        method=request.method,
        path=request.url.path,
        query=request.url.query,
        body=serialize_body(body, request.headers.get("content-type", "")),
        forwarded_for=request.headers.getlist("x-forwarded-for"),
        peer=request.client.host if request.client else None,
    )


def client_ip(request: Request) -> str:
    """Originating address of a request, for login hooks in route handlers."""
    return get_client_ip(
        request.headers.getlist("x-forwarded-for"),
        request.client.host if request.client else None,
    )

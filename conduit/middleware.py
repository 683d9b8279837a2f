"""
Request statistics for the articles API.

Every HTTP response carries the time spent serving it and the number of SQL
statements it issued.  Listing and feed pages fetch authors, tags and
favorite data once per page, so ``X-Query-Count`` for a page of one article
and a page of fifty should match; the regression tests assert exactly that.
"""
import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

statements_issued: ContextVar[int] = ContextVar("statements_issued", default=0)


def install_query_counter(engine) -> None:
    """Tally every statement *engine* sends to the database into ``statements_issued``."""

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _tally(conn, cursor, statement, parameters, context, executemany):
        statements_issued.set(statements_issued.get() + 1)


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)


class RequestStatsMiddleware:
    """
    Stamps ``X-Response-Time-Ms`` and ``X-Query-Count`` on each response and
    logs one access line per request.

    Written as plain ASGI: the inner app runs in this task, so the statement
    tally it accumulates is readable here.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        statements_issued.set(0)
        started = time.perf_counter()
        status = 500

        async def stamped_send(message: Message) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                message["headers"] = [
                    *message.get("headers", []),
                    (b"x-response-time-ms", str(_elapsed_ms(started)).encode()),
                    (b"x-query-count", str(statements_issued.get()).encode()),
                ]
            await send(message)

        try:
            await self.app(scope, receive, stamped_send)
        finally:
            logger.info(
                "%s %s -> %d (%.2f ms, %d queries)",
                scope["method"],
                scope["path"],
                status,
                _elapsed_ms(started),
                statements_issued.get(),
            )

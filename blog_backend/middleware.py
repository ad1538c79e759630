import logging
import time
from contextvars import ContextVar

from sqlalchemy import event
from starlette.types import ASGIApp, Receive, Scope, Send

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Per-request storage round-trip counter
# ---------------------------------------------------------------------------

round_trips_var: ContextVar[int] = ContextVar("storage_round_trips", default=0)


def record_round_trip() -> None:
    """Count one storage round trip against the current request."""
    round_trips_var.set(round_trips_var.get() + 1)


def install_round_trip_counter(engine) -> None:
    """
    Register a ``before_cursor_execute`` listener on *engine* so every SQL
    statement counts as one round trip.

    Must be called once per engine (production engine in ``database.py``,
    test engine in ``conftest.py``).  Redis calls are counted by the
    credential store itself.
    """
    sync_engine = engine.sync_engine

    @event.listens_for(sync_engine, "before_cursor_execute")
    def _count_statement(conn, cursor, statement, parameters, context, executemany):
        record_round_trip()


# ---------------------------------------------------------------------------
# Middleware (pure ASGI, keeps ContextVar mutations visible after the app runs)
# ---------------------------------------------------------------------------

class TimingMiddleware:
    """
    Adds ``X-Response-Time-Ms`` and ``X-Storage-Round-Trips`` response
    headers and logs one line per HTTP request.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        round_trips_var.set(0)
        start = time.perf_counter()

        async def send_wrapper(message):
            if message["type"] == "http.response.start":
                duration_ms = round((time.perf_counter() - start) * 1000, 2)
                trips = round_trips_var.get()
                headers = list(message.get("headers", []))
                headers.append((b"x-response-time-ms", str(duration_ms).encode()))
                headers.append((b"x-storage-round-trips", str(trips).encode()))
                message["headers"] = headers
                logger.debug(
                    "%s %s -> %s in %sms (%d round trips)",
                    scope["method"], scope["path"], message["status"], duration_ms, trips,
                )
            await send(message)

        await self.app(scope, receive, send_wrapper)

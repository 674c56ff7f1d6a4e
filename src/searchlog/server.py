"""HTTP ingestion endpoint for search events sent by the browser extension.

Contract:
    OPTIONS <any>   -> 200 with CORS preflight headers
    POST /log       -> 200 (logged or duplicate), 400 (bad body or write error)
    anything else   -> 404 (including /log with a query string)
Every response carries Access-Control-Allow-Origin: *.
"""

from __future__ import annotations

import logging

from aiohttp import web
from pydantic import ValidationError

from .buffer import RecentQueryBuffer
from .models import CommitOutcome, SearchEvent
from .writer import LogWriter

logger = logging.getLogger(__name__)

LOG_PATH = "/log"

PREFLIGHT_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}


class IngestEndpoint:
    """Request handler: parse, drop repeats, commit, respond.

    The buffer lives for the whole process. The writer is replaced
    (not mutated) when the note name or write mode changes.
    """

    def __init__(self, buffer: RecentQueryBuffer, writer: LogWriter):
        self.buffer = buffer
        self.writer = writer

    def replace_writer(self, writer: LogWriter) -> None:
        self.writer = writer

    async def handle(self, request: web.Request) -> web.Response:
        if request.method == "OPTIONS":
            return web.Response(status=200, headers=PREFLIGHT_HEADERS)

        if request.method == "POST" and request.path_qs == LOG_PATH:
            return await self._handle_log(request)

        return web.Response(status=404)

    async def _handle_log(self, request: web.Request) -> web.Response:
        # Read to EOF: request.read() would stop at client_max_size with a 413
        body = await request.content.read()
        try:
            event = SearchEvent.model_validate_json(body)
        except ValidationError as e:
            logger.error(f"SearchLogger: failed to parse request body: {e.error_count()} error(s)")
            logger.debug(f"Rejected body: {body[:200]!r}")
            return web.Response(status=400)

        if self.buffer.is_duplicate(event.query):
            logger.debug(f"Skipping recent duplicate query: {event.query!r}")
            return web.Response(status=200)

        self.buffer.record(event.query)

        # Bind the writer now so a settings change mid-commit can't split one event
        writer = self.writer
        try:
            outcome = await writer.commit(event)
        except (OSError, ValueError, OverflowError) as e:
            logger.error(f"SearchLogger: failed to write to {writer.note_path}: {e}")
            return web.Response(status=400)

        if outcome is not CommitOutcome.SKIPPED_CONTAINER:
            logger.debug(f"Logged query {event.query!r} ({outcome.value})")
        return web.Response(status=200)


@web.middleware
async def cors_middleware(request: web.Request, handler):
    """Attach Access-Control-Allow-Origin to every response, errors included."""
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        exc.headers.setdefault("Access-Control-Allow-Origin", "*")
        raise
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    return response


def create_app(endpoint: IngestEndpoint) -> web.Application:
    """Build the aiohttp application routing every request to the endpoint."""
    app = web.Application(middlewares=[cors_middleware])
    app.router.add_route("*", "/{tail:.*}", endpoint.handle)
    return app

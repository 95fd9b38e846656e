"""HTTP health check served next to the posting scheduler."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Callable

from aiohttp import web

from .pipeline import Pipeline

logger = logging.getLogger("shotpipe")

PIPELINE_KEY = web.AppKey("pipeline", Pipeline)


def build_health_app(
    pipeline: Pipeline, clock: Callable[[], float] = time.monotonic
) -> web.Application:
    started = clock()

    async def health(request: web.Request) -> web.Response:
        return web.json_response(
            {
                "status": "healthy",
                "uptime": round(clock() - started, 3),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "bot_status": request.app[PIPELINE_KEY].status(),
            }
        )

    async def fallback(request: web.Request) -> web.Response:
        return web.Response(status=404, text="Bot is running")

    app = web.Application()
    app[PIPELINE_KEY] = pipeline
    app.add_routes([web.get("/health", health), web.route("*", "/{tail:.*}", fallback)])
    return app


async def start_health_server(
    pipeline: Pipeline, host: str = "0.0.0.0", port: int = 3000
) -> web.AppRunner:
    """Start serving ``/health``; the caller owns ``runner.cleanup()``."""
    runner = web.AppRunner(build_health_app(pipeline), access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    logger.info("Health check server running on port %s", port)
    return runner

"""HTTP endpoint that accepts position updates from a phone.

Run alongside the bot in the same event loop; readings go straight into the
sampler feed, so they are applied one at a time like every other event.
"""

from __future__ import annotations

import hmac
import json
import logging

from aiohttp import web

from .sampler import GeoSampleFeed

TOKEN_HEADER = "X-Tracker-Token"

FEED_KEY = web.AppKey("feed", GeoSampleFeed)
SECRET_KEY = web.AppKey("shared_secret", str)

logger = logging.getLogger(__name__)


async def receive_location(request: web.Request) -> web.Response:
    secret = request.app[SECRET_KEY]
    if secret:
        token = request.headers.get(TOKEN_HEADER, "")
        if not hmac.compare_digest(token.encode(), secret.encode()):
            logger.warning("Rejected position update with a bad token from %s", request.remote)
            return web.json_response({"status": "error", "message": "Unauthorized"}, status=401)

    try:
        payload = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return web.json_response({"status": "error", "message": "Invalid JSON"}, status=400)

    try:
        reading = request.app[FEED_KEY].publish(payload)
    except ValueError as exc:
        return web.json_response({"status": "error", "message": str(exc)}, status=400)

    return web.json_response({"status": "ok", "accepted": reading is not None})


async def health_check(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok", "subscribed": request.app[FEED_KEY].is_subscribed})


def create_app(feed: GeoSampleFeed, shared_secret: str | None = None) -> web.Application:
    app = web.Application()
    app[FEED_KEY] = feed
    app[SECRET_KEY] = shared_secret or ""

    app.router.add_post("/location", receive_location)
    app.router.add_get("/health", health_check)
    return app


async def start_receiver(app: web.Application, host: str, port: int) -> web.AppRunner | None:
    """Start listening. Returns None when the address cannot be bound.

    Manual tracking keeps working without the receiver, so a busy port is
    logged rather than raised.
    """
    runner = web.AppRunner(app)
    await runner.setup()

    site = web.TCPSite(runner, host, port)
    try:
        await site.start()
    except OSError:
        logger.exception("Could not start position receiver on %s:%s, continuing without it", host, port)
        await runner.cleanup()
        return None

    logger.info("Position receiver listening on http://%s:%s/location", host, port)
    return runner


async def stop_receiver(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("Position receiver stopped")

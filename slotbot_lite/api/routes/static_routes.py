"""Static file serving routes for slotbot_lite."""

from __future__ import annotations

import logging
from pathlib import Path

from aiohttp import web

logger = logging.getLogger(__name__)


def register_static_routes(app: web.Application, static_dir: Path) -> None:
    """Serve ``index.html`` at ``/`` and the whole directory under ``/static/``.

    Args:
        app: aiohttp web application
        static_dir: Directory holding index.html and its assets
    """

    async def serve_index(_request: web.Request) -> web.StreamResponse:
        html_file = static_dir / "index.html"
        if not html_file.exists():
            logger.error("Static HTML file not found: %s", html_file)
            return web.Response(text="Static HTML file not found", status=404)
        return web.FileResponse(html_file)

    app.router.add_get("/", serve_index)
    if static_dir.is_dir():
        app.router.add_static("/static/", static_dir, name="static")
    else:
        logger.warning("Static directory %s does not exist; /static/ not served", static_dir)

    logger.debug("Static routes registered from %s", static_dir)

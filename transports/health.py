import logging

from aiohttp import web

log = logging.getLogger(__name__)


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "OK"})


def create_app() -> web.Application:
    app = web.Application()
    app.router.add_get("/health", health)
    return app


async def start_health_server(port: int, host: str = "0.0.0.0") -> web.AppRunner:
    runner = web.AppRunner(create_app())
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("Server is running on port %s", port)
    return runner

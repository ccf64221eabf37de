"""Liveness endpoint."""

from aiohttp import web

routes = web.RouteTableDef()


@routes.get("/health/live")
async def liveness(request: web.Request) -> web.Response:
    return web.json_response({"status": "alive", "alive": True})

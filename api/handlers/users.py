"""User ledger endpoints."""

from aiohttp import web

from api.keys import SESSION_MAKER
from api.schemas import BalanceView
from contempla.services.ledger.store import LedgerStore

routes = web.RouteTableDef()


@routes.get("/api/v1/users/{user_id:\\d+}/balance")
async def get_balance(request: web.Request) -> web.Response:
    user_id = int(request.match_info["user_id"])

    async with request.app[SESSION_MAKER]() as session:
        check = await LedgerStore(session).verify_balance(user_id)

    view = BalanceView(
        user_id=user_id,
        balance=str(check.cached_balance),
        consistent=check.consistent,
    )
    return web.json_response(view.model_dump())

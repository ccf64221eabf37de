"""Group endpoints."""

import json

from aiohttp import web
from pydantic import ValidationError

from api.keys import SESSION_MAKER
from api.schemas import (
    GroupView,
    JoinGroupRequest,
    JoinGroupResponse,
    ParticipantView,
)
from contempla.services.group.query import GroupQueryService
from contempla.services.join_service import (
    GroupJoinService,
    JoinRequest,
    JoinStatus,
)

_STATUS_CODES = {
    JoinStatus.CREATED: 201,
    JoinStatus.JOINED: 201,
    JoinStatus.PLAN_NOT_FOUND: 404,
}

routes = web.RouteTableDef()


@routes.post("/api/v1/groups/join")
async def join_group(request: web.Request) -> web.Response:
    """Create or join a group. Expected conditions come back as 409."""
    try:
        payload = JoinGroupRequest.model_validate(await request.json())
    except (json.JSONDecodeError, ValidationError) as e:
        return web.json_response(
            {"error": "invalid_payload", "message": str(e)}, status=400
        )

    async with request.app[SESSION_MAKER]() as session:
        result = await GroupJoinService(session).join(
            JoinRequest(
                plan_id=payload.plan_id,
                user_id=payload.user_id,
                referral_code=payload.referral_code,
            )
        )

    body = JoinGroupResponse(
        status=result.status.value,
        group_id=result.group_id,
        participant_id=result.participant_id,
        referral_code=result.referral_code,
        position=result.position,
        message=result.message,
        offer_create_group=result.offer_create_group,
    )
    return web.json_response(
        body.model_dump(), status=_STATUS_CODES.get(result.status, 409)
    )


@routes.get("/api/v1/groups/{group_id:\\d+}")
async def get_group(request: web.Request) -> web.Response:
    """Group status with its seats."""
    group_id = int(request.match_info["group_id"])

    async with request.app[SESSION_MAKER]() as session:
        status = await GroupQueryService(session).get_group_status(group_id)

    group = status.group
    view = GroupView(
        id=group.id,
        plan_id=group.plan_id,
        referral_code=group.referral_code,
        state=group.state,
        capacity=group.capacity,
        active_count=status.active_count,
        paid_count=status.paid_count,
        vacancies=status.vacancies,
        contemplated_participant_id=group.contemplated_participant_id,
        participants=[
            ParticipantView(
                id=p.id,
                user_id=p.user_id,
                position=p.position,
                payment_status=p.payment_status,
            )
            for p in status.participants
        ],
    )
    return web.json_response(view.model_dump())

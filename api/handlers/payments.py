"""Payment provider callback."""

import json

from aiohttp import web
from loguru import logger
from pydantic import ValidationError

from api.keys import SESSION_MAKER, WEBHOOK_SECRET
from api.schemas import PaymentCallback, PaymentCallbackResponse
from contempla.config.settings import settings
from contempla.services.payment.handler import PaymentConfirmationHandler
from contempla.services.payment.signature import verify_webhook_signature

SIGNATURE_HEADER = "X-Signature"

routes = web.RouteTableDef()


@routes.post("/api/v1/payments/callback")
async def payment_callback(request: web.Request) -> web.Response:
    """
    Accept a payment confirmation.

    Always answers 202 once the payload is authentic and well formed:
    processing is idempotent and the provider may redeliver.
    """
    body = await request.read()

    secret = request.app.get(WEBHOOK_SECRET, settings.payment_webhook_secret)
    if secret and not verify_webhook_signature(
        body, request.headers.get(SIGNATURE_HEADER), secret
    ):
        logger.warning("Payment callback with invalid signature rejected")
        return web.json_response(
            {"error": "invalid_signature", "message": "Invalid signature"},
            status=401,
        )

    try:
        payload = PaymentCallback.model_validate(json.loads(body))
    except (json.JSONDecodeError, ValidationError) as e:
        return web.json_response(
            {"error": "invalid_payload", "message": str(e)}, status=400
        )

    async with request.app[SESSION_MAKER]() as session:
        result = await PaymentConfirmationHandler(session).handle_confirmation(
            payload.external_payment_ref,
            payload.participant_id,
            payload.amount,
        )

    response = PaymentCallbackResponse(
        status=result.status.value,
        external_payment_ref=result.external_ref,
        message=result.message,
    )
    return web.json_response(response.model_dump(), status=202)

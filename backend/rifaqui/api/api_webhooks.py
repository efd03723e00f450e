import logging

import orjson
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import ORJSONResponse
from sqlalchemy.orm import Session

from ..database import get_db
from ..services import settlement
from ..services.providers import get_adapter
from ..utils.errors import (
    AuthenticationError,
    InvalidPayload,
    MethodNotAllowed,
    NotFoundError,
    ReferenceFormatError,
    TransientStoreError,
    error_response,
)
from ..utils.metrics import Timer, incr

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

# Providers post server-to-server; preflight is answered permissively.
WEBHOOK_CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "POST, OPTIONS",
}


@router.api_route(
    "/webhooks/{provider}",
    methods=["POST", "OPTIONS", "GET", "PUT", "PATCH", "DELETE"],
)
async def provider_webhook(provider: str, request: Request, db: Session = Depends(get_db)):
    """Receive a payment-provider webhook and settle the referenced tickets.

    - 200: processed, or acknowledged without side effects (non-payment event)
    - 400: body is not JSON or the correlation reference is missing/malformed
    - 401: signature/hash check failed or the owning organizer is unknown
    - 405: any method other than POST/OPTIONS, rejected before the body is read
    - 500: the ticket update failed; the provider is expected to retry
    """
    adapter = get_adapter(provider)
    if adapter is None:
        return ORJSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"success": False, "error": f"Unknown provider '{provider}'"},
            headers=WEBHOOK_CORS_HEADERS,
        )
    if request.method == "OPTIONS":
        return Response(status_code=status.HTTP_200_OK, headers=WEBHOOK_CORS_HEADERS)
    if request.method != "POST":
        return error_response(MethodNotAllowed(), headers=WEBHOOK_CORS_HEADERS)

    incr("webhook.received", tags={"provider": adapter.name})
    raw = await request.body()
    try:
        payload = orjson.loads(raw)
        if not isinstance(payload, dict):
            raise InvalidPayload("Webhook body must be a JSON object")
        event = adapter.parse(payload)
    except orjson.JSONDecodeError:
        return error_response(InvalidPayload("Body is not valid JSON"), headers=WEBHOOK_CORS_HEADERS)
    except (InvalidPayload, ReferenceFormatError) as exc:
        incr("webhook.rejected", tags={"provider": adapter.name, "reason": "format"})
        return error_response(exc, headers=WEBHOOK_CORS_HEADERS)

    if event is None:
        logger.info("Ignoring non-payment %s webhook", adapter.name)
        return ORJSONResponse(
            content={"success": True, "message": adapter.ignored_message()},
            headers=WEBHOOK_CORS_HEADERS,
        )

    id_field = {adapter.response_id_field: adapter.response_id(event)}
    try:
        adapter.authenticate(db, event)
    except (AuthenticationError, NotFoundError) as exc:
        incr("webhook.rejected", tags={"provider": adapter.name, "reason": "auth"})
        settlement.record_rejection(db, event, exc)
        return error_response(
            exc, code=status.HTTP_401_UNAUTHORIZED, headers=WEBHOOK_CORS_HEADERS, **id_field
        )

    try:
        with Timer("webhook.settle.ms", tags={"provider": adapter.name}):
            result = settlement.apply(db, event)
    except TransientStoreError as exc:
        return error_response(exc, headers=WEBHOOK_CORS_HEADERS, **id_field)

    body = {
        "success": True,
        "message": "Webhook processed successfully",
        **id_field,
        "outcome": result.outcome.value,
        "tickets_updated": result.updated,
    }
    if adapter.name == "stripe":
        body["event_type"] = event.event_type
    return ORJSONResponse(content=body, headers=WEBHOOK_CORS_HEADERS)

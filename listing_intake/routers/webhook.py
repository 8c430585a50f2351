from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import PlainTextResponse
from pydantic import ValidationError

from listing_intake import __version__
from listing_intake.config import settings
from listing_intake.logging_config import get_logger
from listing_intake.routers.dependencies import get_dispatcher
from listing_intake.schemas.webhook import InboundEvent, WebhookAck, WebhookEnvelope
from listing_intake.services.dispatcher import ConversationDispatcher

logger = get_logger("webhook")

router = APIRouter()


@router.get("/webhook")
async def verify_webhook(request: Request):
    """Platform subscription handshake; ``?version=check`` answers a deploy check."""
    params = request.query_params
    if params.get("version") == "check":
        return {"status": "ok", "version": __version__}

    mode = params.get("hub.mode")
    token = params.get("hub.verify_token")
    challenge = params.get("hub.challenge") or ""
    expected = settings.whatsapp_verify_token
    if mode == "subscribe" and expected and token == expected:
        logger.info("Webhook verified")
        return PlainTextResponse(challenge)

    logger.warning("Webhook verification failed", extra={"context": {"mode": mode}})
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Verification failed")


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(request: Request, dispatcher: ConversationDispatcher = Depends(get_dispatcher)):
    """Always 200 once the envelope parses, so the platform never redelivers a half-processed event."""
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON")

    try:
        envelope = WebhookEnvelope.model_validate(body)
    except ValidationError as exc:
        logger.warning("Malformed webhook envelope", extra={"context": {"errors": exc.errors()[:3]}})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Malformed envelope")

    processed = 0
    for message in envelope.messages():
        try:
            outcome = await dispatcher.handle(InboundEvent.from_whatsapp(message))
        except Exception:
            logger.exception(
                "Webhook message failed",
                extra={"context": {"message_id": message.id}},
            )
            continue
        if outcome.status == "processed":
            processed += 1

    return WebhookAck(status="ok", processed=processed)

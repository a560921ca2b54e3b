"""
Inbound SMS webhook endpoint.

The SMS transport always receives HTTP 200 with a definite result body, so
it never retries a message the service has already acted on.
"""
from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from smswallet.core.dependencies import get_command_processor
from smswallet.core.logging import get_logger
from smswallet.schemas.webhook import WebhookPayload, WebhookResult
from smswallet.services.command_processor import CommandProcessor

router = APIRouter()
logger = get_logger(__name__)


@router.post("/webhook", response_model=WebhookResult)
async def receive_sms_webhook(
    request: Request,
    processor: CommandProcessor = Depends(get_command_processor),
) -> WebhookResult:
    """
    Receive an inbound SMS event and run the command it carries.

    Malformed bodies and non-SMS events are acknowledged as ``ignored``.
    """
    try:
        body = await request.json()
    except ValueError:
        logger.warning("Webhook body is not valid JSON")
        return WebhookResult(status="ignored", success=False)

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        logger.warning("Webhook payload failed validation", errors=e.errors())
        return WebhookResult(status="ignored", success=False)

    if payload.data is None:
        logger.info("Webhook event without message data", event_type=payload.type)
        return WebhookResult(status="ignored")

    result = await processor.process_webhook(payload.model_dump())
    if not result.processed:
        return WebhookResult(status="ignored")

    return WebhookResult(
        status="processed",
        command=result.command.value,
        success=result.success,
        reply_sent=result.reply_sent,
        message=result.response.message,
    )

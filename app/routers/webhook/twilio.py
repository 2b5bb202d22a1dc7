from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, HTTPException, Request, status
from twilio.request_validator import RequestValidator

from app.config.settings import settings
from app.services.notifications.delivery_tracker import (
    DeliveryTracker,
    get_delivery_tracker,
)
from app.utils.responses import ResponseBuilder
from app.utils.logging import get_logger

logger = get_logger()

twilio_router = APIRouter()


def callback_url(request: Request) -> str:
    # Twilio signs the URL it was told to call, which may differ behind a proxy
    return settings.TWILIO_STATUS_CALLBACK_URL or str(request.url)


@twilio_router.post("/status")
async def process_twilio_status_callback(
    request: Request,
    tracker: DeliveryTracker = Depends(get_delivery_tracker),
):
    """Apply a signed Twilio MessageStatus callback to the matching notification"""
    signature = request.headers.get("X-Twilio-Signature", "")
    body = (await request.body()).decode()
    form = {key: values[0] for key, values in parse_qs(body).items() if values}

    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing X-Twilio-Signature header",
        )

    if not settings.TWILIO_AUTH_TOKEN or not RequestValidator(
        settings.TWILIO_AUTH_TOKEN
    ).validate(callback_url(request), form, signature):
        logger.warning(f"Rejected Twilio callback with a bad signature for {form.get('MessageSid')}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid signature. Payload has been tampered with or signature is incorrect.",
        )

    message_sid = form.get("MessageSid")
    message_status = form.get("MessageStatus")

    if not message_sid or not message_status:
        logger.warning("Twilio status callback without MessageSid or MessageStatus")
        return ResponseBuilder.error(
            request=request,
            message="MessageSid and MessageStatus are required",
            error_code="INVALID_STATUS_CALLBACK",
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    record = tracker.record_delivery_status(message_sid, message_status)

    # Unknown messages are acknowledged so Twilio does not keep retrying
    return ResponseBuilder.success(
        request=request,
        data={"matched": record is not None, "messageStatus": message_status},
        message="Status callback processed",
    )

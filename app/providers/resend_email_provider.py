import asyncio
from typing import Dict, Optional

import resend

from app.config.settings import settings
from app.db.models import ChannelType, NotificationKind
from app.models.notification_models import DeliveryOutcome
from app.providers.notifier import Notifier
from app.services.notifications.templates import render_template
from app.utils.errors import NotificationDeliveryError
from app.utils.logging import get_logger

logger = get_logger()


class ResendEmailNotifier(Notifier):
    """Transactional email through the Resend API"""

    def __init__(
        self, api_key: Optional[str] = None, from_address: Optional[str] = None
    ):
        self.api_key = api_key or settings.RESEND_API_KEY
        self.from_address = from_address or settings.EMAIL_FROM_ADDRESS

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        template_kind: NotificationKind,
        variables: Dict[str, str],
    ) -> DeliveryOutcome:
        if channel != ChannelType.EMAIL:
            raise NotificationDeliveryError(
                f"Email notifier cannot send on {channel.value}",
                error_code="WRONG_CHANNEL",
            )
        if not destination:
            raise NotificationDeliveryError(
                "No email address provided", error_code="MISSING_DESTINATION"
            )

        message = render_template(template_kind, variables)
        email_data = {
            "from": self.from_address,
            "to": [destination],
            "subject": message["subject"],
            "text": message["body"],
        }

        try:
            resend.api_key = self.api_key
            # The Resend SDK is blocking
            response = await asyncio.to_thread(resend.Emails.send, email_data)
        except Exception as e:
            logger.error(f"Resend rejected {template_kind.value} email: {str(e)}")
            return DeliveryOutcome(success=False, error_message=str(e))

        message_id = response.get("id") if isinstance(response, dict) else None
        logger.info(f"Email {template_kind.value} accepted by Resend, id {message_id}")
        return DeliveryOutcome(
            success=True,
            provider_message_id=message_id,
            delivery_status="sent",
        )

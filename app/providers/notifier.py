from abc import ABC, abstractmethod
from typing import Dict, Optional

from app.db.models import ChannelType, NotificationKind
from app.models.notification_models import DeliveryOutcome
from app.utils.errors import NotificationDeliveryError
from app.utils.logging import get_logger

logger = get_logger()


class Notifier(ABC):
    """Sends one rendered notification to one destination"""

    @abstractmethod
    async def send(
        self,
        channel: ChannelType,
        destination: str,
        template_kind: NotificationKind,
        variables: Dict[str, str],
    ) -> DeliveryOutcome:
        """
        Deliver a message. Provider rejections come back as an unsuccessful
        outcome; unusable input raises NotificationDeliveryError.
        """
        pass


class ChannelNotifier(Notifier):
    """Routes each send to the notifier registered for its channel"""

    def __init__(self, notifiers: Optional[Dict[ChannelType, Notifier]] = None):
        self._notifiers: Dict[ChannelType, Notifier] = dict(notifiers or {})

    def register(self, channel: ChannelType, notifier: Notifier) -> None:
        self._notifiers[channel] = notifier
        logger.info(f"Registered notifier for channel: {channel.value}")

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        template_kind: NotificationKind,
        variables: Dict[str, str],
    ) -> DeliveryOutcome:
        notifier = self._notifiers.get(channel)
        if notifier is None:
            raise NotificationDeliveryError(
                f"No notifier configured for channel {channel.value}",
                error_code="CHANNEL_NOT_CONFIGURED",
            )
        return await notifier.send(channel, destination, template_kind, variables)


def get_default_notifier() -> ChannelNotifier:
    """Notifier wired to the configured email and WhatsApp providers"""
    from app.providers.resend_email_provider import ResendEmailNotifier
    from app.providers.twilio_whatsapp_provider import TwilioWhatsAppNotifier

    return ChannelNotifier(
        {
            ChannelType.EMAIL: ResendEmailNotifier(),
            ChannelType.WHATSAPP: TwilioWhatsAppNotifier(),
        }
    )

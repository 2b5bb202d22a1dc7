import json
import re
from typing import Dict, Optional

import httpx

from app.config.settings import settings
from app.db.models import ChannelType, NotificationKind
from app.models.notification_models import DeliveryOutcome
from app.providers.notifier import Notifier
from app.services.notifications.templates import render_template
from app.utils.errors import NotificationDeliveryError
from app.utils.logging import get_logger

logger = get_logger()

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


def format_phone_to_e164(phone: Optional[str]) -> Optional[str]:
    """
    Normalise North American numbers to E.164: (416) 555-1234 -> +14165551234.
    Numbers already written with a leading + are kept. Anything else is None.
    """
    if not phone:
        return None
    digits = re.sub(r"\D", "", phone)
    if not digits:
        return None
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    if len(digits) == 10:
        return f"+1{digits}"
    if phone.strip().startswith("+"):
        return f"+{digits}"
    return None


def whatsapp_address(number: str) -> str:
    if number.startswith("whatsapp:"):
        return number
    if number.startswith("+"):
        return f"whatsapp:{number}"
    return f"whatsapp:+{re.sub(r'[^0-9]', '', number)}"


class TwilioWhatsAppNotifier(Notifier):
    """
    WhatsApp messages through the Twilio Messages REST API.

    Sends a Content Template (ContentSid + ContentVariables) when one is
    configured for the kind, otherwise a plain text body.
    """

    def __init__(
        self,
        account_sid: Optional[str] = None,
        auth_token: Optional[str] = None,
        from_number: Optional[str] = None,
        messaging_service_sid: Optional[str] = None,
        template_sids: Optional[Dict[str, str]] = None,
        status_callback_url: Optional[str] = None,
        timeout: float = 10.0,
    ):
        self.account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        self.auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        self.from_number = from_number or settings.TWILIO_WHATSAPP_NUMBER
        self.messaging_service_sid = (
            messaging_service_sid or settings.TWILIO_MESSAGING_SERVICE_SID
        )
        self.template_sids = (
            template_sids
            if template_sids is not None
            else settings.TWILIO_WHATSAPP_TEMPLATE_SIDS
        )
        self.default_template_sid = settings.TWILIO_WHATSAPP_TEMPLATE_SID
        self.status_callback_url = (
            status_callback_url or settings.TWILIO_STATUS_CALLBACK_URL
        )
        self.timeout = timeout

    def _template_sid(self, kind: NotificationKind) -> Optional[str]:
        return self.template_sids.get(kind.value) or self.default_template_sid or None

    def build_message_data(
        self, to_number: str, kind: NotificationKind, variables: Dict[str, str]
    ) -> Dict[str, str]:
        data = {"To": whatsapp_address(to_number)}

        if self.messaging_service_sid:
            data["MessagingServiceSid"] = self.messaging_service_sid
        else:
            data["From"] = whatsapp_address(self.from_number)

        template_sid = self._template_sid(kind)
        if template_sid:
            # Approved templates take {{1}} name, {{2}} call link, {{3}} quote link
            data["ContentSid"] = template_sid
            data["ContentVariables"] = json.dumps(
                {
                    "1": variables.get("customer_name", ""),
                    "2": variables.get("book_call_link", ""),
                    "3": variables.get("quote_link", ""),
                }
            )
        else:
            data["Body"] = render_template(kind, variables)["body"]

        if self.status_callback_url:
            data["StatusCallback"] = self.status_callback_url
        return data

    async def send(
        self,
        channel: ChannelType,
        destination: str,
        template_kind: NotificationKind,
        variables: Dict[str, str],
    ) -> DeliveryOutcome:
        if channel != ChannelType.WHATSAPP:
            raise NotificationDeliveryError(
                f"WhatsApp notifier cannot send on {channel.value}",
                error_code="WRONG_CHANNEL",
            )
        if not self.account_sid or not self.auth_token:
            raise NotificationDeliveryError(
                "Twilio credentials are not configured",
                error_code="PROVIDER_NOT_CONFIGURED",
            )
        if not self.messaging_service_sid and not self.from_number:
            raise NotificationDeliveryError(
                "Twilio WhatsApp sender is not configured",
                error_code="PROVIDER_NOT_CONFIGURED",
            )

        to_number = format_phone_to_e164(destination)
        if not to_number:
            raise NotificationDeliveryError(
                f"Invalid phone number format: {destination}",
                error_code="INVALID_DESTINATION",
            )

        data = self.build_message_data(to_number, template_kind, variables)

        try:
            async with httpx.AsyncClient() as client:
                response = await client.post(
                    f"{TWILIO_API_BASE}/Accounts/{self.account_sid}/Messages.json",
                    auth=(self.account_sid, self.auth_token),
                    data=data,
                    timeout=self.timeout,
                )
        except httpx.HTTPError as e:
            logger.error(f"Twilio request failed for {template_kind.value}: {str(e)}")
            return DeliveryOutcome(success=False, error_message=str(e))

        if response.status_code not in (200, 201):
            try:
                error_message = response.json().get("message", response.text)
            except ValueError:
                error_message = response.text
            logger.error(
                f"Twilio rejected {template_kind.value} with {response.status_code}: {error_message}"
            )
            return DeliveryOutcome(
                success=False,
                error_message=f"Twilio error {response.status_code}: {error_message}",
            )

        result = response.json()
        status = result.get("status")
        logger.info(f"WhatsApp {template_kind.value} accepted by Twilio, sid {result.get('sid')}")
        return DeliveryOutcome(
            success=True,
            provider_message_id=result.get("sid"),
            delivered=status == "delivered",
            delivery_status=status,
        )

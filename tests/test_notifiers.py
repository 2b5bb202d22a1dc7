import json
from unittest.mock import AsyncMock, Mock, patch

import httpx
import pytest

from app.db.models import ChannelType, NotificationKind
from app.providers.notifier import ChannelNotifier
from app.providers.resend_email_provider import ResendEmailNotifier
from app.providers.twilio_whatsapp_provider import (
    TwilioWhatsAppNotifier,
    format_phone_to_e164,
    whatsapp_address,
)
from app.services.notifications.templates import render_template
from app.utils.errors import NotificationDeliveryError
from tests.factories import FakeNotifier

VARIABLES = {
    "customer_name": "Ana Lima",
    "quote_link": "https://bookings.example.com/book/b1",
    "book_call_link": "https://bookings.example.com/book/b1#book-call",
    "event_date": "November 20th, 2026",
    "appointment_time": "2:00 PM",
}


def twilio_notifier(**overrides) -> TwilioWhatsAppNotifier:
    options = {
        "account_sid": "AC123",
        "auth_token": "token",
        "from_number": "+14165550000",
        "messaging_service_sid": None,
        "template_sids": {},
        "status_callback_url": None,
    }
    options.update(overrides)
    notifier = TwilioWhatsAppNotifier(**options)
    notifier.messaging_service_sid = options["messaging_service_sid"]
    notifier.default_template_sid = None
    notifier.status_callback_url = options["status_callback_url"]
    return notifier


def twilio_response(status_code: int, payload: dict) -> Mock:
    response = Mock(status_code=status_code, text=json.dumps(payload))
    response.json.return_value = payload
    return response


class TestPhoneFormatting:
    """Test E.164 normalisation for WhatsApp."""

    def test_north_american_numbers(self):
        """Test ten and eleven digit numbers get the +1 prefix."""
        assert format_phone_to_e164("(416) 555-0134") == "+14165550134"
        assert format_phone_to_e164("1-416-555-0134") == "+14165550134"
        assert format_phone_to_e164("416.555.0134") == "+14165550134"

    def test_international_and_invalid_numbers(self):
        """Test + numbers are kept and anything else is rejected."""
        assert format_phone_to_e164("+44 20 7946 0958") == "+442079460958"
        assert format_phone_to_e164("555-0134") is None
        assert format_phone_to_e164("") is None
        assert format_phone_to_e164(None) is None

    def test_whatsapp_address(self):
        """Test the whatsapp: prefix is added once."""
        assert whatsapp_address("+14165550134") == "whatsapp:+14165550134"
        assert whatsapp_address("whatsapp:+14165550134") == "whatsapp:+14165550134"
        assert whatsapp_address("14165550134") == "whatsapp:+14165550134"


class TestTwilioWhatsAppNotifier:
    """Test WhatsApp sends through the Twilio REST API."""

    def test_template_message_data(self):
        """Test a configured Content Template carries the three variables."""
        notifier = twilio_notifier(
            template_sids={"urgency-2w": "HX42"},
            status_callback_url="https://api.example.com/webhooks/twilio/status",
        )

        data = notifier.build_message_data(
            "+14165550134", NotificationKind.URGENCY_2W, VARIABLES
        )

        assert data["To"] == "whatsapp:+14165550134"
        assert data["From"] == "whatsapp:+14165550000"
        assert data["ContentSid"] == "HX42"
        assert json.loads(data["ContentVariables"]) == {
            "1": "Ana Lima",
            "2": VARIABLES["book_call_link"],
            "3": VARIABLES["quote_link"],
        }
        assert data["StatusCallback"].endswith("/twilio/status")
        assert "Body" not in data

    def test_plain_text_fallback(self):
        """Test a kind without a template is sent as a text body."""
        notifier = twilio_notifier(messaging_service_sid="MG1")

        data = notifier.build_message_data(
            "+14165550134", NotificationKind.URGENCY_7D, VARIABLES
        )

        assert data["MessagingServiceSid"] == "MG1"
        assert "From" not in data
        assert "Ana Lima" in data["Body"]
        assert "ContentSid" not in data

    @pytest.mark.asyncio
    async def test_send_success(self):
        """Test an accepted message returns the Twilio SID."""
        client = AsyncMock()
        client.post.return_value = twilio_response(201, {"sid": "SM1", "status": "queued"})

        with patch("app.providers.twilio_whatsapp_provider.httpx.AsyncClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            outcome = await twilio_notifier().send(
                ChannelType.WHATSAPP, "416-555-0134", NotificationKind.URGENCY_7D, VARIABLES
            )

        assert outcome.success
        assert outcome.provider_message_id == "SM1"
        assert outcome.delivery_status == "queued"
        url = client.post.call_args.args[0]
        assert url.endswith("/Accounts/AC123/Messages.json")
        assert client.post.call_args.kwargs["auth"] == ("AC123", "token")

    @pytest.mark.asyncio
    async def test_send_rejected(self):
        """Test a Twilio error response becomes a failed outcome."""
        client = AsyncMock()
        client.post.return_value = twilio_response(400, {"message": "Invalid To number"})

        with patch("app.providers.twilio_whatsapp_provider.httpx.AsyncClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            outcome = await twilio_notifier().send(
                ChannelType.WHATSAPP, "416-555-0134", NotificationKind.URGENCY_7D, VARIABLES
            )

        assert not outcome.success
        assert "Invalid To number" in outcome.error_message

    @pytest.mark.asyncio
    async def test_send_network_error(self):
        """Test transport errors become a failed outcome."""
        client = AsyncMock()
        client.post.side_effect = httpx.ConnectError("connection refused")

        with patch("app.providers.twilio_whatsapp_provider.httpx.AsyncClient") as client_cls:
            client_cls.return_value.__aenter__.return_value = client
            outcome = await twilio_notifier().send(
                ChannelType.WHATSAPP, "416-555-0134", NotificationKind.URGENCY_7D, VARIABLES
            )

        assert not outcome.success
        assert "connection refused" in outcome.error_message

    @pytest.mark.asyncio
    async def test_send_rejects_bad_input(self):
        """Test unusable destinations and channels raise before any request."""
        notifier = twilio_notifier()
        with pytest.raises(NotificationDeliveryError):
            await notifier.send(
                ChannelType.WHATSAPP, "555-0134", NotificationKind.URGENCY_7D, VARIABLES
            )
        with pytest.raises(NotificationDeliveryError):
            await notifier.send(
                ChannelType.EMAIL, "416-555-0134", NotificationKind.URGENCY_7D, VARIABLES
            )


class TestResendEmailNotifier:
    """Test email sends through Resend."""

    @pytest.mark.asyncio
    async def test_send_success(self):
        """Test the rendered email is handed to Resend."""
        notifier = ResendEmailNotifier(api_key="re_test", from_address="Bookings <hi@example.com>")

        with patch(
            "app.providers.resend_email_provider.resend.Emails.send",
            return_value={"id": "email-1"},
        ) as send:
            outcome = await notifier.send(
                ChannelType.EMAIL, "ana@example.com", NotificationKind.INITIAL, VARIABLES
            )

        assert outcome.success
        assert outcome.provider_message_id == "email-1"
        email = send.call_args.args[0]
        assert email["to"] == ["ana@example.com"]
        assert email["subject"] == "Your custom quote is ready"
        assert VARIABLES["quote_link"] in email["text"]

    @pytest.mark.asyncio
    async def test_send_failure(self):
        """Test a Resend exception becomes a failed outcome."""
        notifier = ResendEmailNotifier(api_key="re_test", from_address="hi@example.com")

        with patch(
            "app.providers.resend_email_provider.resend.Emails.send",
            side_effect=Exception("rate limited"),
        ):
            outcome = await notifier.send(
                ChannelType.EMAIL, "ana@example.com", NotificationKind.INITIAL, VARIABLES
            )

        assert not outcome.success
        assert outcome.error_message == "rate limited"


class TestChannelNotifier:
    """Test routing by channel."""

    @pytest.mark.asyncio
    async def test_routes_to_registered_notifier(self):
        """Test each channel reaches its own notifier."""
        email, whatsapp = FakeNotifier(), FakeNotifier()
        notifier = ChannelNotifier({ChannelType.EMAIL: email})
        notifier.register(ChannelType.WHATSAPP, whatsapp)

        await notifier.send(ChannelType.WHATSAPP, "+14165550134", NotificationKind.URGENCY_7D, VARIABLES)

        assert len(whatsapp.calls) == 1
        assert email.calls == []

    @pytest.mark.asyncio
    async def test_missing_channel(self):
        """Test an unconfigured channel raises a delivery error."""
        with pytest.raises(NotificationDeliveryError) as exc_info:
            await ChannelNotifier().send(
                ChannelType.EMAIL, "ana@example.com", NotificationKind.INITIAL, VARIABLES
            )
        assert exc_info.value.error_code == "CHANNEL_NOT_CONFIGURED"


class TestTemplates:
    """Test message templates."""

    def test_every_kind_has_a_template(self):
        """Test all thirteen kinds render with the standard variables."""
        for kind in NotificationKind:
            message = render_template(kind, VARIABLES)
            assert "Ana Lima" in message["body"]

    def test_missing_variable_falls_back_to_raw_template(self):
        """Test a missing variable does not raise."""
        message = render_template(NotificationKind.INITIAL, {"customer_name": "Ana"})
        assert "{quote_link}" in message["body"]

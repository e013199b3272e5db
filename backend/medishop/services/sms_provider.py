"""
SMS Provider
Delivers OTP messages through the gateway named by OTP_PROVIDER (mock, msg91, twilio)
"""

import asyncio
import logging
import re
import time

import requests

from ..config import settings
from ..errors import SmsDeliveryFailed
from ..utils.validators import format_e164_india, normalize_indian_mobile

logger = logging.getLogger(__name__)

MSG91_URL = "https://control.msg91.com/api/v5/flow"
TWILIO_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"

# Twilio error codes worth translating for the customer
TWILIO_ERRORS = {
    21211: "Invalid phone number format. Please include country code (e.g., +919876543210)",
    21608: "This phone number is not verified with the SMS provider",
    20003: "SMS provider authentication failed",
    21606: "The phone number cannot receive SMS messages",
}


class SmsProvider:
    name = "base"

    async def send(self, phone: str, message: str) -> dict:
        """Send a message; returns {"provider", "message_id"} or raises SmsDeliveryFailed"""
        raise NotImplementedError

    async def _post(self, url: str, **kwargs) -> requests.Response:
        # requests is blocking, keep it off the event loop
        loop = asyncio.get_event_loop()
        try:
            return await loop.run_in_executor(
                None,
                lambda: requests.post(url, timeout=settings.SMS_TIMEOUT_SECONDS, **kwargs)
            )
        except requests.RequestException as e:
            raise SmsDeliveryFailed(f"SMS gateway unreachable: {e}")


class MockSmsProvider(SmsProvider):
    """Development provider, writes the message to the log"""

    name = "mock"

    async def send(self, phone: str, message: str) -> dict:
        logger.info(f"MOCK SMS to {phone}: {message}")
        return {"provider": self.name, "message_id": f"mock_{int(time.time() * 1000)}"}


class Msg91SmsProvider(SmsProvider):
    name = "msg91"

    async def send(self, phone: str, message: str) -> dict:
        if not settings.MSG91_API_KEY:
            raise SmsDeliveryFailed("MSG91 credentials not configured. Check MSG91_API_KEY.")

        otp_match = re.search(r"\d{6}", message)
        payload = {
            "template_id": settings.MSG91_TEMPLATE_ID,
            "sender": settings.MSG91_SENDER,
            "short_url": "0",
            "mobiles": f"91{normalize_indian_mobile(phone)}",
            "otp": otp_match.group(0) if otp_match else ""
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "authkey": settings.MSG91_API_KEY
        }

        response = await self._post(MSG91_URL, json=payload, headers=headers)
        if response.status_code != 200:
            raise SmsDeliveryFailed(f"MSG91 API error: HTTP {response.status_code}")

        result = response.json()
        if result.get("type") != "success":
            raise SmsDeliveryFailed(f"MSG91 send failed: {result.get('message', 'Unknown error')}")

        logger.info(f"OTP sent via MSG91, request {result.get('request_id')}")
        return {"provider": self.name, "message_id": result.get("request_id", "unknown")}


class TwilioSmsProvider(SmsProvider):
    name = "twilio"

    async def send(self, phone: str, message: str) -> dict:
        sid = settings.TWILIO_ACCOUNT_SID
        token = settings.TWILIO_AUTH_TOKEN
        sender = settings.TWILIO_FROM
        if not sid or not token or not sender:
            raise SmsDeliveryFailed(
                "Twilio credentials not configured. Check TWILIO_ACCOUNT_SID, "
                "TWILIO_AUTH_TOKEN and TWILIO_FROM."
            )

        response = await self._post(
            TWILIO_URL.format(sid=sid),
            data={"To": format_e164_india(phone), "From": sender, "Body": message},
            auth=(sid, token)
        )
        result = response.json() if response.content else {}

        if response.status_code >= 400:
            code = result.get("code")
            logger.error(f"Twilio API error {code}: {result.get('message')}")
            raise SmsDeliveryFailed(TWILIO_ERRORS.get(code, result.get("message", "Twilio send failed")))

        logger.info(f"OTP sent via Twilio, sid {result.get('sid')}")
        return {"provider": self.name, "message_id": result.get("sid", "unknown")}


PROVIDERS = {
    "mock": MockSmsProvider,
    "console": MockSmsProvider,
    "msg91": Msg91SmsProvider,
    "twilio": TwilioSmsProvider,
}


def get_sms_provider() -> SmsProvider:
    """FastAPI dependency returning the configured provider"""
    provider_class = PROVIDERS.get(settings.OTP_PROVIDER.lower(), MockSmsProvider)
    return provider_class()


def otp_message(code: str) -> str:
    return (
        f"Your MediShop OTP is {code}. Valid for {settings.OTP_EXPIRE_MINUTES} minutes. "
        f"Do not share with anyone."
    )

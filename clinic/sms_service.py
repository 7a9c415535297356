"""
SMS notifications through the external SMS gateway.

The gateway accepts `{apikey, number, message, sendername}` and answers with
a message record (or a list of them) whose `status` is Pending/Queued when the
message was accepted.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Optional

import httpx

from . import config

logger = logging.getLogger(__name__)

PH_MOBILE_RE = re.compile(r"^(\+?63|0)9\d{9}$")
SENDER_ERROR_RE = re.compile(
    r"sender|sendername|from|sender_id|senderid|sender name|not allowed|not approved|not registered"
)
ACCEPTED_STATUSES = ("Pending", "Queued")


def is_valid_ph_mobile(number: str) -> bool:
    return bool(PH_MOBILE_RE.match(str(number).strip()))


def normalize_number(number: str) -> str:
    """09XXXXXXXXX -> +639XXXXXXXXX, spaces removed"""
    cleaned = re.sub(r"\s+", "", str(number).strip())
    return re.sub(r"^09", "+639", cleaned)


def normalize_status(status) -> str:
    if not status:
        return "Unknown"
    s = str(status).lower()
    for known in ("pending", "queued", "failed", "rejected"):
        if known in s:
            return known.capitalize()
    return str(status)


@dataclass
class SmsResult:
    success: bool
    status: str = "Unknown"
    message_id: Optional[str] = None
    error: Optional[str] = None
    fallback: bool = False
    raw: dict = field(default_factory=dict)


class SmsNotifier:
    """Sends SMS through the gateway, retrying once with a fallback sender name"""

    def __init__(
        self,
        api_url: str = config.SMS_API_URL,
        api_key: str = config.SMS_API_KEY,
        sender_name: str = config.SMS_SENDER_NAME,
        fallback_sender: Optional[str] = config.SMS_FALLBACK_SENDER,
        timeout: float = config.SMS_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url
        self.api_key = api_key
        self.sender_name = sender_name
        self.fallback_sender = fallback_sender
        self.timeout = timeout
        self.transport = transport

        if not self.api_url:
            logger.warning("SMS_API_URL is not set, SMS notifications are disabled")

    @property
    def enabled(self) -> bool:
        return bool(self.api_url and self.api_key)

    async def _post(self, client: httpx.AsyncClient, number: str, message: str, sender: str) -> httpx.Response:
        return await client.post(
            self.api_url,
            json={"apikey": self.api_key, "number": number, "message": message, "sendername": sender},
        )

    @staticmethod
    def _parse(resp: httpx.Response, fallback: bool) -> SmsResult:
        try:
            data = resp.json()
        except ValueError:
            data = {"body": resp.text}
        payload = data[0] if isinstance(data, list) and data else data
        if not isinstance(payload, dict):
            payload = {}

        if resp.status_code >= 400:
            error = payload.get("message") or payload.get("error") or f"HTTP {resp.status_code}"
            return SmsResult(False, error=str(error), fallback=fallback, raw=payload)

        status = normalize_status(payload.get("status"))
        message_id = payload.get("message_id") or payload.get("id")
        if status in ACCEPTED_STATUSES:
            return SmsResult(True, status, str(message_id) if message_id else None, fallback=fallback, raw=payload)
        return SmsResult(
            False, status, str(message_id) if message_id else None,
            error=f"Gateway returned status: {status}", fallback=fallback, raw=payload,
        )

    async def send(self, number: str, message: str) -> SmsResult:
        """Send one SMS; failures are reported in the result, never raised"""
        if not number or not message:
            return SmsResult(False, error="Missing number or message")
        if not is_valid_ph_mobile(number):
            return SmsResult(False, error="Invalid PH phone format (use 09XXXXXXXXX or +639XXXXXXXXX)")
        if not self.enabled:
            return SmsResult(False, error="SMS gateway not configured")

        normalized = normalize_number(number)
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            try:
                resp = await self._post(client, normalized, message, self.sender_name)
            except httpx.HTTPError as e:
                logger.error("SMS request to %s failed: %s", normalized, e)
                return SmsResult(False, error=str(e))

            result = self._parse(resp, fallback=False)
            if result.success:
                logger.info("SMS %s to %s (id %s)", result.status.lower(), normalized, result.message_id)
                return result

            if resp.status_code >= 400 and SENDER_ERROR_RE.search(resp.text.lower()):
                if not self.fallback_sender or self.fallback_sender == self.sender_name:
                    result.error = "Sender name not approved by gateway"
                    logger.error("SMS to %s rejected: %s", normalized, result.error)
                    return result

                logger.info("Retrying SMS to %s with fallback sender %s", normalized, self.fallback_sender)
                try:
                    resp = await self._post(client, normalized, message, self.fallback_sender)
                except httpx.HTTPError as e:
                    logger.error("SMS fallback request to %s failed: %s", normalized, e)
                    return SmsResult(False, error=str(e), fallback=True)
                result = self._parse(resp, fallback=True)

        if not result.success:
            logger.error("SMS to %s not sent: %s", normalized, result.error)
        return result

    async def send_appointment_sms(
        self,
        phone: Optional[str],
        patient_name: str,
        service: str,
        booking_date: str,
        booking_time: str,
        reservation_paid: bool,
    ) -> SmsResult:
        if not phone:
            logger.info("No phone number for %s, skipping SMS", patient_name)
            return SmsResult(False, error="No phone number")

        state = "CONFIRMED" if reservation_paid else "PENDING"
        payment_note = (
            "Your reservation fee has been paid."
            if reservation_paid
            else "Please pay your reservation fee at the clinic."
        )
        message = (
            f"Hi {patient_name}! Your appointment for {service} on {booking_date} at {booking_time} "
            f"is {state}. {payment_note} Thank you for choosing our clinic! - {config.CLINIC_NAME}"
        )
        return await self.send(phone, message)


sms_notifier = SmsNotifier()

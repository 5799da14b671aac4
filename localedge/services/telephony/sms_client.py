"""
Outbound SMS through the Twilio REST API.

No automatic retry: a failed send is reported to the caller, which decides
whether the message is worth another attempt.
"""

import httpx

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

TWILIO_API_BASE_URL = "https://api.twilio.com/2010-04-01"
REQUEST_TIMEOUT = 15


class TwilioSMSError(Exception):
    """Raised when Twilio rejects or fails an SMS send."""

    def __init__(
        self, message: str, status_code: int | None = None, error_code: int | None = None
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code


class TwilioSMSClient:
    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(REQUEST_TIMEOUT))

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, *, from_number: str, to_number: str, body: str) -> str:
        """Send one message and return its SID."""
        account_sid = settings.TWILIO_ACCOUNT_SID
        auth_token = settings.TWILIO_AUTH_TOKEN
        if not account_sid or not auth_token:
            raise TwilioSMSError("Twilio credentials are not configured")

        url = f"{TWILIO_API_BASE_URL}/Accounts/{account_sid}/Messages.json"
        try:
            response = await self._client.post(
                url,
                auth=(account_sid, auth_token),
                data={"From": from_number, "To": to_number, "Body": body},
            )
        except httpx.RequestError as e:
            logger.error("Twilio SMS request failed", to_number=to_number, error=str(e))
            raise TwilioSMSError(f"Twilio unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}

        if response.is_error:
            message = payload.get("message") or response.text[:200]
            logger.error(
                "Twilio SMS rejected",
                to_number=to_number,
                status_code=response.status_code,
                twilio_code=payload.get("code"),
                error=message,
            )
            raise TwilioSMSError(
                f"Twilio SMS error: {message}",
                status_code=response.status_code,
                error_code=payload.get("code"),
            )

        sid = payload.get("sid")
        logger.info("SMS sent", message_sid=sid, to_number=to_number)
        return sid


sms_client = TwilioSMSClient()

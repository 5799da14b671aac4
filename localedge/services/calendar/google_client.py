"""
Low-level Google OAuth and Calendar API client.
Token exchange/refresh and event create/update over httpx.
"""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from localedge.config import settings
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

CALENDAR_API_BASE_URL = "https://www.googleapis.com/calendar/v3"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
CALENDAR_SCOPES = (
    "https://www.googleapis.com/auth/calendar.events "
    "https://www.googleapis.com/auth/calendar.readonly"
)
CALENDAR_PRIMARY = "primary"

REQUEST_TIMEOUT = 30
MAX_RETRIES = 3
BACKOFF_FACTOR = 1
RETRY_STATUS_CODES = {429, 500, 502, 503, 504}


class GoogleCalendarError(Exception):
    """Custom exception for Google OAuth and Calendar API errors."""

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        status_code: int | None = None,
        response_data: dict | None = None,
    ):
        super().__init__(message)
        self.error_code = error_code
        self.status_code = status_code
        self.response_data = response_data or {}


class GoogleTokens:
    """Result of a code exchange or refresh."""

    def __init__(self, data: dict):
        self.access_token: str = data["access_token"]
        self.refresh_token: str | None = data.get("refresh_token")
        self.expires_at: datetime = datetime.now(UTC) + timedelta(
            seconds=int(data.get("expires_in", 3600))
        )


class GoogleCalendarClient:
    """
    Google API client used by the calendar sync.

    Retries transient failures (429/5xx, connection errors) with backoff;
    everything else is raised as GoogleCalendarError.
    """

    def __init__(self, client: httpx.AsyncClient | None = None):
        self._client = client or self._create_client()

    def _create_client(self) -> httpx.AsyncClient:
        timeout = httpx.Timeout(REQUEST_TIMEOUT)
        limits = httpx.Limits(max_keepalive_connections=10, max_connections=20)
        return httpx.AsyncClient(timeout=timeout, limits=limits)

    async def close(self) -> None:
        await self._client.aclose()

    async def _request_with_retry(self, method: str, url: str, **kwargs) -> httpx.Response:
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await self._client.request(method, url, **kwargs)
                if response.status_code in RETRY_STATUS_CODES and attempt < MAX_RETRIES:
                    backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                    logger.debug(
                        "Google API retrying request",
                        attempt=attempt,
                        status_code=response.status_code,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue
                return response
            except httpx.RequestError as e:
                if attempt >= MAX_RETRIES:
                    raise GoogleCalendarError(f"Google API unreachable: {e}") from e
                backoff = BACKOFF_FACTOR * (2 ** (attempt - 1))
                logger.debug(
                    "Google API request error, retrying",
                    attempt=attempt,
                    error=str(e),
                    backoff_seconds=backoff,
                )
                await asyncio.sleep(backoff)
        raise GoogleCalendarError("Google API retry loop exhausted")

    def _handle_api_response(self, response: httpx.Response, operation: str) -> dict:
        if response.is_success:
            try:
                return response.json() if response.text else {}
            except ValueError as e:
                raise GoogleCalendarError(f"Invalid response format: {e}") from e

        try:
            error_data = response.json()
        except ValueError:
            error_data = {}

        error = error_data.get("error")
        if isinstance(error, dict):
            # Calendar API error envelope
            error_code = str(error.get("code", response.status_code))
            message = error.get("message") or "Unknown Calendar API error"
        else:
            # OAuth token endpoint error envelope
            error_code = error or str(response.status_code)
            message = error_data.get("error_description") or error or "Google API error"

        logger.error(
            f"Google API {operation} failed",
            status_code=response.status_code,
            error_code=error_code,
            error_message=message,
        )
        raise GoogleCalendarError(
            message,
            error_code=error_code,
            status_code=response.status_code,
            response_data=error_data,
        )

    def build_consent_url(self, state: str) -> str:
        params = {
            "client_id": settings.GOOGLE_CLIENT_ID or "",
            "redirect_uri": settings.calendar_redirect_uri(),
            "response_type": "code",
            "scope": CALENDAR_SCOPES,
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return str(httpx.URL(GOOGLE_AUTH_URL, params=params))

    async def exchange_code(self, code: str) -> GoogleTokens:
        response = await self._request_with_retry(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "code": code,
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "redirect_uri": settings.calendar_redirect_uri(),
                "grant_type": "authorization_code",
            },
        )
        return GoogleTokens(self._handle_api_response(response, "exchange_code"))

    async def refresh_access_token(self, refresh_token: str) -> GoogleTokens:
        response = await self._request_with_retry(
            "POST",
            GOOGLE_TOKEN_URL,
            data={
                "refresh_token": refresh_token,
                "client_id": settings.GOOGLE_CLIENT_ID,
                "client_secret": settings.GOOGLE_CLIENT_SECRET,
                "grant_type": "refresh_token",
            },
        )
        return GoogleTokens(self._handle_api_response(response, "refresh_token"))

    async def upsert_event(
        self,
        access_token: str,
        event: dict[str, Any],
        *,
        event_id: str | None = None,
        calendar_id: str = CALENDAR_PRIMARY,
    ) -> dict:
        """Update `event_id` when given, otherwise create a new event."""
        headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        base = f"{CALENDAR_API_BASE_URL}/calendars/{calendar_id}/events"
        if event_id:
            response = await self._request_with_retry(
                "PUT", f"{base}/{event_id}", headers=headers, json=event
            )
            return self._handle_api_response(response, "update_event")

        response = await self._request_with_retry("POST", base, headers=headers, json=event)
        return self._handle_api_response(response, "create_event")

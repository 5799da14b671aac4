"""
Google Calendar sync for appointments.

Connect/disconnect a business's calendar and push appointments to it. Sync is
best-effort from the scheduler's point of view: callers get a
CalendarSyncResult back and decide whether to care about failures.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Appointment, Business
from localedge.repositories.appointment_repository import AppointmentRepository
from localedge.repositories.business_repository import BusinessRepository
from localedge.repositories.calendar_token_repository import CalendarTokenRepository
from localedge.security.signing import SigningError, sign_state, verify_state
from localedge.services.calendar.google_client import GoogleCalendarClient, GoogleCalendarError

logger = get_logger(__name__)

STATE_NAMESPACE = "calendar-oauth"

# Refresh slightly early so the token does not expire mid-request
EXPIRY_SKEW = timedelta(seconds=60)


class CalendarConnectionError(Exception):
    """Raised when the calendar connection cannot be established or used."""

    def __init__(self, message: str, error_code: str = "calendar_error"):
        super().__init__(message)
        self.error_code = error_code


@dataclass
class CalendarSyncResult:
    success: bool
    event_id: str | None = None
    event_link: str | None = None
    skipped: bool = False
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "event_id": self.event_id,
            "event_link": self.event_link,
            "skipped": self.skipped,
            "error": self.error,
        }


def build_event(appointment: Appointment, business: Business) -> dict[str, Any]:
    """Calendar event body for an appointment."""
    contact = appointment.contact
    start = appointment.scheduled_at
    end = appointment.end_at(settings.DEFAULT_APPOINTMENT_DURATION_MINUTES)
    return {
        "summary": f"{appointment.service_type or 'Appointment'} - "
        f"{(contact.name if contact else None) or 'Unknown'}",
        "description": (
            f"Phone: {(contact.phone_number if contact else None) or 'N/A'}\n"
            f"Notes: {appointment.notes or 'None'}\n"
            f"Status: {appointment.status}"
        ),
        "start": {"dateTime": start.isoformat(), "timeZone": business.timezone},
        "end": {"dateTime": end.isoformat(), "timeZone": business.timezone},
    }


class CalendarSyncService:
    def __init__(self, client: GoogleCalendarClient | None = None):
        self.client = client or GoogleCalendarClient()

    async def close(self) -> None:
        await self.client.close()

    async def status(self, business_id: str) -> dict[str, Any]:
        tokens = await CalendarTokenRepository.get(business_id)
        if not tokens:
            return {"connected": False, "calendar_id": None, "expires_at": None}
        return {
            "connected": True,
            "calendar_id": tokens.get("calendar_id") or "primary",
            "expires_at": tokens.get("token_expires_at"),
        }

    def build_auth_url(self, business_id: str, redirect_uri: str | None = None) -> str:
        if not settings.GOOGLE_CLIENT_ID:
            raise CalendarConnectionError("Google OAuth is not configured", "not_configured")
        state = sign_state(
            {"business_id": business_id, "redirect_uri": redirect_uri},
            namespace=STATE_NAMESPACE,
        )
        return self.client.build_consent_url(state)

    async def handle_callback(self, code: str, state: str) -> dict[str, Any]:
        """Exchange the authorization code and store the tokens."""
        try:
            payload = verify_state(state, namespace=STATE_NAMESPACE)
        except SigningError as e:
            raise CalendarConnectionError(f"Invalid OAuth state: {e}", "invalid_state") from e

        business_id = payload["business_id"]
        try:
            tokens = await self.client.exchange_code(code)
        except GoogleCalendarError as e:
            raise CalendarConnectionError(
                f"Failed to exchange code: {e}", "token_exchange_failed"
            ) from e

        await CalendarTokenRepository.upsert(
            business_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            expires_at=tokens.expires_at,
        )
        logger.info("Calendar connected", business_id=business_id)
        return payload

    async def disconnect(self, business_id: str) -> bool:
        removed = await CalendarTokenRepository.delete(business_id)
        logger.info("Calendar disconnected", business_id=business_id, removed=removed)
        return removed

    async def _valid_access_token(self, business_id: str, tokens: dict) -> str:
        expires_at = tokens.get("token_expires_at")
        if expires_at and expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at and expires_at - EXPIRY_SKEW > datetime.now(UTC):
            return tokens["access_token"]

        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            raise CalendarConnectionError("Calendar token expired; reconnect required", "expired")

        refreshed = await self.client.refresh_access_token(refresh_token)
        await CalendarTokenRepository.update_access_token(
            business_id, refreshed.access_token, refreshed.expires_at
        )
        logger.info("Calendar access token refreshed", business_id=business_id)
        return refreshed.access_token

    async def sync_appointment(self, business_id: str, appointment_id: str) -> CalendarSyncResult:
        """
        Create or update the calendar event for one appointment.

        Never raises for Google, connection or database failures; they come
        back as an unsuccessful result so bulk syncs keep going.
        """
        try:
            tokens = await CalendarTokenRepository.get(business_id)
            if not tokens:
                return CalendarSyncResult(success=False, skipped=True)

            business = await BusinessRepository.get(business_id)
            appointment = await AppointmentRepository.get(business_id, appointment_id)
            if not business or not appointment:
                return CalendarSyncResult(success=False, error="Appointment not found")

            access_token = await self._valid_access_token(business_id, tokens)
            event = await self.client.upsert_event(
                access_token,
                build_event(appointment, business),
                event_id=appointment.google_calendar_event_id,
                calendar_id=tokens.get("calendar_id") or "primary",
            )
        except (GoogleCalendarError, CalendarConnectionError, DatabaseError) as e:
            logger.warning(
                "Calendar sync failed",
                business_id=business_id,
                appointment_id=appointment_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return CalendarSyncResult(success=False, error=str(e))

        event_id = event.get("id")
        event_link = event.get("htmlLink")
        if event_id and event_id != appointment.google_calendar_event_id:
            try:
                await AppointmentRepository.set_calendar_event_id(appointment_id, event_id)
            except DatabaseError as e:
                # Event now exists in Google with no stored id
                logger.error(
                    "Calendar event created but its id was not stored",
                    business_id=business_id,
                    appointment_id=appointment_id,
                    event_id=event_id,
                    error=str(e),
                )
                return CalendarSyncResult(
                    success=False, event_id=event_id, event_link=event_link, error=str(e)
                )

        logger.info(
            "Appointment synced to calendar",
            business_id=business_id,
            appointment_id=appointment_id,
            event_id=event_id,
        )
        return CalendarSyncResult(success=True, event_id=event_id, event_link=event_link)

    async def sync_all(self, business_id: str) -> dict[str, int]:
        """Push every unsynced pending/confirmed appointment."""
        if not await CalendarTokenRepository.get(business_id):
            raise CalendarConnectionError("Google Calendar not connected", "not_connected")

        appointments = await AppointmentRepository.list_unsynced(business_id)
        synced = failed = 0
        for appointment in appointments:
            result = await self.sync_appointment(business_id, appointment.id)
            if result.success:
                synced += 1
            else:
                failed += 1

        logger.info(
            "Calendar bulk sync finished",
            business_id=business_id,
            synced=synced,
            failed=failed,
            total=len(appointments),
        )
        return {"synced": synced, "failed": failed, "total": len(appointments)}

    async def sync_many(self, business_id: str, appointment_ids: list[str]) -> dict[str, int]:
        """Sync a selection of appointments, tallying skipped separately."""
        counts = {"synced": 0, "skipped": 0, "failed": 0, "total": len(appointment_ids)}
        for appointment_id in appointment_ids:
            result = await self.sync_appointment(business_id, appointment_id)
            if result.success:
                counts["synced"] += 1
            elif result.skipped:
                counts["skipped"] += 1
            else:
                counts["failed"] += 1
        return counts


calendar_sync_service = CalendarSyncService()

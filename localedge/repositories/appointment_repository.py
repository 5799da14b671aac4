"""
Persistence for appointments.

Every method accepts an optional `connection` so the reschedule and booking
flows can run their re-validation and write on one transaction.
"""

from datetime import datetime

import psycopg

from localedge.db.helpers import (
    DatabaseError,
    execute_query,
    fetch_all,
    fetch_one,
    fetch_val,
    with_db_retry,
)
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Appointment

logger = get_logger(__name__)


class AppointmentRepositoryError(DatabaseError):
    """More specific exception for appointment persistence failures."""


class AppointmentRepository:
    """Queries over the appointments table (joined with contacts for display)."""

    SELECT_COLUMNS = """
        a.id, a.business_id, a.contact_id, a.scheduled_at, a.duration_minutes,
        a.status, a.service_type, a.notes, a.confirmation_code,
        a.google_calendar_event_id, a.reminder_sent_at, a.recurrence_pattern,
        a.parent_appointment_id,
        c.name AS contact_name, c.phone_number AS contact_phone_number
    """

    FROM_CLAUSE = "FROM appointments a LEFT JOIN contacts c ON c.id = a.contact_id"

    @classmethod
    async def get(
        cls,
        business_id: str,
        appointment_id: str,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Appointment | None:
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            {cls.FROM_CLAUSE}
            WHERE a.id = %s AND a.business_id = %s
        """
        row = await fetch_one(query, (appointment_id, business_id), connection=connection)
        return Appointment.from_row(row) if row else None

    @classmethod
    async def list_in_window(
        cls,
        business_id: str,
        window_start: datetime,
        window_end: datetime,
        *,
        include_cancelled: bool = False,
        connection: psycopg.AsyncConnection | None = None,
    ) -> list[Appointment]:
        """Appointments starting in [window_start, window_end), ascending."""
        status_filter = "" if include_cancelled else "AND a.status <> 'cancelled'"
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            {cls.FROM_CLAUSE}
            WHERE a.business_id = %s
              AND a.scheduled_at >= %s
              AND a.scheduled_at < %s
              {status_filter}
            ORDER BY a.scheduled_at ASC
        """
        rows = await fetch_all(
            query, (business_id, window_start, window_end), connection=connection
        )
        return [Appointment.from_row(row) for row in rows]

    @classmethod
    async def lock_business_schedule(
        cls, business_id: str, *, connection: psycopg.AsyncConnection
    ) -> None:
        """
        Serialize schedule writers for one business until the transaction ends.

        Must run inside a transaction; the lock is released on commit or rollback.
        """
        await fetch_val(
            "SELECT pg_advisory_xact_lock(hashtext(%s)) IS NULL",
            (f"appointments:{business_id}",),
            connection=connection,
        )

    @classmethod
    async def update_scheduled_at(
        cls,
        business_id: str,
        appointment_id: str,
        scheduled_at: datetime,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> None:
        query = """
            UPDATE appointments
            SET scheduled_at = %s, updated_at = NOW()
            WHERE id = %s AND business_id = %s
        """
        updated = await execute_query(
            query, (scheduled_at, appointment_id, business_id), connection=connection
        )
        if updated != 1:
            raise AppointmentRepositoryError(
                f"Expected to update one appointment, updated {updated}",
                operation="update_scheduled_at",
                recoverable=False,
            )

    @classmethod
    async def update_status(
        cls,
        business_id: str,
        appointment_id: str,
        status: str,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> bool:
        query = """
            UPDATE appointments
            SET status = %s, updated_at = NOW()
            WHERE id = %s AND business_id = %s
        """
        updated = await execute_query(
            query, (status, appointment_id, business_id), connection=connection
        )
        return updated == 1

    @classmethod
    async def insert(
        cls,
        *,
        business_id: str,
        contact_id: str,
        scheduled_at: datetime,
        duration_minutes: int,
        service_type: str | None,
        notes: str | None,
        recurrence_pattern: str | None = None,
        parent_appointment_id: str | None = None,
        connection: psycopg.AsyncConnection | None = None,
    ) -> str:
        """Insert a pending appointment and return its id."""
        query = """
            INSERT INTO appointments (
                business_id, contact_id, scheduled_at, duration_minutes, service_type,
                notes, status, recurrence_pattern, parent_appointment_id
            )
            VALUES (%s, %s, %s, %s, %s, %s, 'pending', %s, %s)
            RETURNING id
        """
        appointment_id = await fetch_val(
            query,
            (
                business_id,
                contact_id,
                scheduled_at,
                duration_minutes,
                service_type,
                notes,
                recurrence_pattern,
                parent_appointment_id,
            ),
            connection=connection,
        )
        if not appointment_id:
            raise AppointmentRepositoryError("Failed to create appointment", operation="insert")
        return str(appointment_id)

    @classmethod
    @with_db_retry()
    async def set_calendar_event_id(cls, appointment_id: str, event_id: str) -> None:
        await execute_query(
            "UPDATE appointments SET google_calendar_event_id = %s WHERE id = %s",
            (event_id, appointment_id),
        )

    @classmethod
    async def mark_reminder_sent(cls, appointment_id: str) -> None:
        await execute_query(
            "UPDATE appointments SET reminder_sent_at = NOW() WHERE id = %s",
            (appointment_id,),
        )

    @classmethod
    @with_db_retry()
    async def list_unsynced(cls, business_id: str) -> list[Appointment]:
        """Active appointments that have never been pushed to the calendar."""
        query = f"""
            SELECT {cls.SELECT_COLUMNS}
            {cls.FROM_CLAUSE}
            WHERE a.business_id = %s
              AND a.google_calendar_event_id IS NULL
              AND a.status IN ('pending', 'confirmed')
            ORDER BY a.scheduled_at ASC
        """
        rows = await fetch_all(query, (business_id,))
        return [Appointment.from_row(row) for row in rows]

    @classmethod
    @with_db_retry()
    async def list_due_for_reminder(
        cls, window_start: datetime, window_end: datetime
    ) -> list[dict]:
        """
        Raw rows for the reminder job: appointment, contact and business columns.

        Opted-out contacts and already-reminded appointments are filtered here;
        per-business settings are applied by the caller.
        """
        query = """
            SELECT
                a.id, a.business_id, a.contact_id, a.scheduled_at, a.duration_minutes,
                a.status, a.service_type, a.confirmation_code,
                c.name AS contact_name, c.phone_number AS contact_phone_number,
                c.opted_out AS contact_opted_out,
                b.name AS business_name, b.twilio_phone_number, b.ai_language,
                b.timezone, b.twilio_settings
            FROM appointments a
            JOIN contacts c ON c.id = a.contact_id
            JOIN businesses b ON b.id = a.business_id
            WHERE a.scheduled_at >= %s
              AND a.scheduled_at < %s
              AND a.reminder_sent_at IS NULL
              AND a.status IN ('pending', 'confirmed')
              AND c.opted_out = false
            ORDER BY a.scheduled_at ASC
        """
        return await fetch_all(query, (window_start, window_end))

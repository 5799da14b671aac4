"""Inbound call records written by the telephony webhooks."""

from localedge.db.helpers import execute_query, fetch_one, fetch_val
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CallRepository:
    @classmethod
    async def create_ringing(
        cls, *, business_id: str, contact_id: str, caller_phone: str, call_sid: str
    ) -> str | None:
        call_id = await fetch_val(
            """
            INSERT INTO calls (
                business_id, contact_id, caller_phone, call_status, twilio_call_sid, was_answered
            )
            VALUES (%s, %s, %s, 'ringing', %s, false)
            RETURNING id
            """,
            (business_id, contact_id, caller_phone, call_sid),
        )
        return str(call_id) if call_id else None

    @classmethod
    async def get_by_sid(cls, call_sid: str) -> dict | None:
        return await fetch_one(
            """
            SELECT id, business_id, contact_id, caller_phone, call_status,
                   was_answered, textback_sent
            FROM calls
            WHERE twilio_call_sid = %s
            """,
            (call_sid,),
        )

    @classmethod
    async def record_dial_result(
        cls, call_id: str, *, status: str, was_answered: bool, duration_seconds: int
    ) -> None:
        await execute_query(
            """
            UPDATE calls
            SET call_status = %s, was_answered = %s, duration_seconds = %s
            WHERE id = %s
            """,
            (status, was_answered, duration_seconds, call_id),
        )

    @classmethod
    async def mark_textback_sent(cls, call_id: str) -> None:
        await execute_query(
            "UPDATE calls SET textback_sent = true, textback_sent_at = NOW() WHERE id = %s",
            (call_id,),
        )

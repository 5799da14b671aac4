"""SMS conversations with contacts and the messages in them."""

from datetime import datetime

from localedge.db.helpers import execute_query, fetch_all, fetch_val, with_db_retry
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class ConversationRepository:
    @classmethod
    @with_db_retry()
    async def get_or_create_active(cls, business_id: str, contact_id: str) -> str:
        """Id of the contact's active SMS conversation, opening one if needed."""
        existing = await fetch_val(
            """
            SELECT id FROM conversations
            WHERE business_id = %s AND contact_id = %s AND status = 'active'
            ORDER BY updated_at DESC
            LIMIT 1
            """,
            (business_id, contact_id),
        )
        if existing:
            return str(existing)

        conversation_id = await fetch_val(
            """
            INSERT INTO conversations (business_id, contact_id, status, channel)
            VALUES (%s, %s, 'active', 'sms')
            RETURNING id
            """,
            (business_id, contact_id),
        )
        logger.info(
            "Conversation opened",
            business_id=business_id,
            conversation_id=str(conversation_id),
        )
        return str(conversation_id)

    @classmethod
    async def add_message(
        cls,
        conversation_id: str,
        *,
        direction: str,
        body: str,
        twilio_sid: str | None = None,
        ai_generated: bool = False,
    ) -> str:
        message_id = await fetch_val(
            """
            INSERT INTO messages (conversation_id, direction, body, twilio_sid, ai_generated)
            VALUES (%s, %s, %s, %s, %s)
            RETURNING id
            """,
            (conversation_id, direction, body, twilio_sid, ai_generated),
        )
        return str(message_id)

    @classmethod
    async def count_outbound_since(cls, conversation_id: str, since: datetime) -> int:
        count = await fetch_val(
            """
            SELECT COUNT(*) FROM messages
            WHERE conversation_id = %s AND direction = 'outbound' AND created_at >= %s
            """,
            (conversation_id, since),
        )
        return int(count or 0)

    @classmethod
    async def recent_messages(cls, conversation_id: str, limit: int = 20) -> list[dict]:
        """The latest `limit` messages, oldest first."""
        rows = await fetch_all(
            """
            SELECT direction, body FROM messages
            WHERE conversation_id = %s
            ORDER BY created_at DESC
            LIMIT %s
            """,
            (conversation_id, limit),
        )
        return list(reversed(rows))

    @classmethod
    async def touch(cls, conversation_id: str) -> None:
        await execute_query(
            "UPDATE conversations SET updated_at = NOW() WHERE id = %s", (conversation_id,)
        )

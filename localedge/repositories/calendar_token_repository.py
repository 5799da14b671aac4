"""OAuth tokens for a business's Google Calendar connection."""

from datetime import datetime

from localedge.db.helpers import execute_query, fetch_one
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CalendarTokenRepository:
    COLUMNS = "business_id, access_token, refresh_token, token_expires_at, calendar_id"

    @classmethod
    async def get(cls, business_id: str) -> dict | None:
        return await fetch_one(
            f"SELECT {cls.COLUMNS} FROM google_calendar_tokens WHERE business_id = %s",
            (business_id,),
        )

    @classmethod
    async def upsert(
        cls,
        business_id: str,
        *,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime,
    ) -> None:
        # Google omits refresh_token on re-consent; keep the stored one
        await execute_query(
            """
            INSERT INTO google_calendar_tokens (
                business_id, access_token, refresh_token, token_expires_at
            )
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (business_id) DO UPDATE SET
                access_token = EXCLUDED.access_token,
                refresh_token = COALESCE(EXCLUDED.refresh_token, google_calendar_tokens.refresh_token),
                token_expires_at = EXCLUDED.token_expires_at,
                updated_at = NOW()
            """,
            (business_id, access_token, refresh_token, expires_at),
        )
        logger.info("Calendar tokens stored", business_id=business_id)

    @classmethod
    async def update_access_token(
        cls, business_id: str, access_token: str, expires_at: datetime
    ) -> None:
        await execute_query(
            """
            UPDATE google_calendar_tokens
            SET access_token = %s, token_expires_at = %s, updated_at = NOW()
            WHERE business_id = %s
            """,
            (access_token, expires_at, business_id),
        )

    @classmethod
    async def delete(cls, business_id: str) -> bool:
        deleted = await execute_query(
            "DELETE FROM google_calendar_tokens WHERE business_id = %s", (business_id,)
        )
        return deleted > 0

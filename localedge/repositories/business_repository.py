"""Businesses, contacts and staff roles."""

import psycopg

from localedge.db.helpers import execute_query, fetch_one, fetch_val
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.domain.appointment_domain import Business, Contact

logger = get_logger(__name__)

BUSINESS_COLUMNS = """
    id, name, owner_user_id, timezone, twilio_phone_number, forward_to_phones,
    ai_language, ai_instructions, twilio_settings, quiet_hours_start, quiet_hours_end
"""

CONTACT_COLUMNS = "id, business_id, name, phone_number, opted_out"


def _row_to_contact(row: dict | None) -> Contact | None:
    if not row:
        return None
    return Contact(
        id=str(row["id"]),
        business_id=str(row["business_id"]),
        name=row.get("name"),
        phone_number=row["phone_number"],
        opted_out=bool(row.get("opted_out")),
    )


class BusinessRepository:
    @classmethod
    async def get(cls, business_id: str) -> Business | None:
        row = await fetch_one(
            f"SELECT {BUSINESS_COLUMNS} FROM businesses WHERE id = %s", (business_id,)
        )
        return Business(**row) if row else None

    @classmethod
    async def get_for_owner(cls, owner_user_id: str) -> Business | None:
        """The business owned by an authenticated console user."""
        row = await fetch_one(
            f"""
            SELECT {BUSINESS_COLUMNS} FROM businesses
            WHERE owner_user_id = %s
            ORDER BY created_at ASC
            LIMIT 1
            """,
            (owner_user_id,),
        )
        return Business(**row) if row else None

    @classmethod
    async def get_by_twilio_number(cls, phone_number: str) -> Business | None:
        row = await fetch_one(
            f"SELECT {BUSINESS_COLUMNS} FROM businesses WHERE twilio_phone_number = %s",
            (phone_number,),
        )
        return Business(**row) if row else None


class ContactRepository:
    @classmethod
    async def get(cls, business_id: str, contact_id: str) -> Contact | None:
        row = await fetch_one(
            f"SELECT {CONTACT_COLUMNS} FROM contacts WHERE id = %s AND business_id = %s",
            (contact_id, business_id),
        )
        return _row_to_contact(row)

    @classmethod
    async def find_by_phone(
        cls,
        business_id: str,
        phone_number: str,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Contact | None:
        row = await fetch_one(
            f"""
            SELECT {CONTACT_COLUMNS} FROM contacts
            WHERE business_id = %s AND phone_number = %s
            """,
            (business_id, phone_number),
            connection=connection,
        )
        return _row_to_contact(row)

    @classmethod
    async def create(
        cls,
        business_id: str,
        phone_number: str,
        name: str | None = None,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Contact:
        row = await fetch_one(
            f"""
            INSERT INTO contacts (business_id, phone_number, name)
            VALUES (%s, %s, %s)
            RETURNING {CONTACT_COLUMNS}
            """,
            (business_id, phone_number, name),
            connection=connection,
        )
        logger.info("Contact created", business_id=business_id, contact_id=str(row["id"]))
        return _row_to_contact(row)

    @classmethod
    async def get_or_create(
        cls,
        business_id: str,
        phone_number: str,
        name: str | None = None,
        *,
        connection: psycopg.AsyncConnection | None = None,
    ) -> Contact:
        existing = await cls.find_by_phone(business_id, phone_number, connection=connection)
        if existing:
            return existing
        return await cls.create(business_id, phone_number, name, connection=connection)

    @classmethod
    async def set_opted_out(cls, contact_id: str) -> None:
        """Stop all outbound SMS to this contact."""
        await execute_query(
            "UPDATE contacts SET opted_out = true, opted_out_at = NOW() WHERE id = %s",
            (contact_id,),
        )
        logger.info("Contact opted out of SMS", contact_id=contact_id)


class UserRoleRepository:
    @classmethod
    async def has_role(cls, user_id: str, role: str) -> bool:
        found = await fetch_val(
            "SELECT EXISTS (SELECT 1 FROM user_roles WHERE user_id = %s AND role = %s)",
            (user_id, role),
        )
        return bool(found)

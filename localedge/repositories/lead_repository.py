"""
Marketing-site leads: AI assessments and contact form submissions.
Read back by the admin console.
"""

from localedge.db.helpers import execute_query, fetch_all, fetch_val
from localedge.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

SUBMISSION_COLUMNS = """
    id, first_name, last_name, email, phone, company, message, is_urgent, created_at
"""


class LeadRepository:
    @classmethod
    async def save_assessment(
        cls,
        *,
        business_name: str,
        industry: str,
        employees: int,
        pain_points: list[str],
        goals: str,
    ) -> str:
        assessment_id = await fetch_val(
            """
            INSERT INTO assessments (
                business_name, industry, employees, revenue_range, pain_points, goals
            )
            VALUES (%s, %s, %s, 'Not collected', %s, %s)
            RETURNING id
            """,
            (business_name, industry, employees, pain_points, goals),
        )
        logger.info("Assessment saved", assessment_id=str(assessment_id))
        return str(assessment_id)

    @classmethod
    async def save_submission(
        cls,
        *,
        first_name: str,
        last_name: str,
        email: str,
        phone: str | None,
        company: str | None,
        message: str,
        is_urgent: bool = False,
    ) -> str:
        submission_id = await fetch_val(
            """
            INSERT INTO contact_submissions (
                first_name, last_name, email, phone, company, message, is_urgent
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            RETURNING id
            """,
            (first_name, last_name, email, phone, company, message, is_urgent),
        )
        logger.info("Contact submission saved", submission_id=str(submission_id))
        return str(submission_id)

    @classmethod
    async def list_submissions(cls, limit: int = 100, offset: int = 0) -> list[dict]:
        return await fetch_all(
            f"""
            SELECT {SUBMISSION_COLUMNS}
            FROM contact_submissions
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            (limit, offset),
        )

    @classmethod
    async def delete_submission(cls, submission_id: str) -> bool:
        deleted = await execute_query(
            "DELETE FROM contact_submissions WHERE id = %s", (submission_id,)
        )
        return deleted > 0

    @classmethod
    async def list_assessments(cls, limit: int = 100, offset: int = 0) -> list[dict]:
        return await fetch_all(
            """
            SELECT id, business_name, industry, employees, pain_points, goals, created_at
            FROM assessments
            ORDER BY created_at DESC
            LIMIT %s OFFSET %s
            """,
            (limit, offset),
        )

# localedge/services/assessment_service.py
"""
AI Assessment Service
Runs the marketing site's "free AI assessment" chat with OpenAI tool calling:
the model interviews the visitor, then calls a tool once it has collected
either the business profile or the visitor's contact details.
"""

import asyncio
import json
import re
from typing import Any

import openai
from openai import AsyncOpenAI

from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.infrastructure.observability.logging import get_logger
from localedge.repositories.lead_repository import LeadRepository

logger = get_logger(__name__)

MAX_RETRIES = 3
UNKNOWN_BUSINESS = "Unknown Business"
_BUSINESS_NAME = re.compile(r"business.*?(?:name|called).*?is\s+([^.!?]+)", re.IGNORECASE)

SYSTEM_PROMPT = """
You are the LocalEdgeAI "Free 30-Minute AI Assessment" Assistant. LocalEdgeAI specializes in cost-effective AI integrations for businesses.

YOUR ROLE:
- You represent LocalEdgeAI exclusively - do NOT refer users to other AI providers
- Your goal is to assess their business needs and position LocalEdgeAI as the solution
- Collect business information to provide personalized LocalEdgeAI recommendations

CONVERSATION FLOW:
- Ask for these fields ONE question at a time:
  - businessName
  - industry
  - employees
  - painPoints (up to 3 items)
  - goals
- When you have all fields, call the tool "collectBusinessInfo"
- If the user asks to be contacted after the proposal, collect first name, last name, email and phone, then call the tool "collectContactInfo"
- Stay focused: If users ask off-topic questions, reply: "I'm your LocalEdgeAI Assessment bot. Let's finish your assessment first so I can provide personalized AI recommendations for your business."

TONE & POSITIONING:
- Professional yet friendly
- Emphasize cost-effectiveness and practical AI implementations
- Show genuine interest in their business challenges
"""

SUMMARY_SYSTEM_PROMPT = """You are a LocalEdgeAI business consultant providing personalized AI recommendations. LocalEdgeAI specializes in cost-effective AI integrations for businesses.

IMPORTANT: You represent LocalEdgeAI exclusively. Do NOT mention or recommend other AI providers.

FORMAT YOUR RESPONSE AS PLAIN TEXT WITHOUT MARKDOWN:
- No headers, bold or italic formatting
- Use clear section breaks with line spacing
- Use bullet points with simple dashes (-) for lists

Structure your response with these sections:

EXECUTIVE SUMMARY
TAILORED LOCALEDGEAI SOLUTIONS
IMPLEMENTATION ROADMAP
ROI & COST BENEFITS
NEXT STEPS

End your response by asking: "Would you like us to contact you for additional assistance or to provide a personalized quote for implementing these AI solutions?"
"""

TOOLS: list[dict[str, Any]] = [
    {
        "type": "function",
        "function": {
            "name": "collectBusinessInfo",
            "description": "Collects structured business assessment fields from the user for LocalEdgeAI recommendations.",
            "parameters": {
                "type": "object",
                "properties": {
                    "businessName": {"type": "string"},
                    "industry": {"type": "string"},
                    "employees": {"type": "integer"},
                    "painPoints": {"type": "array", "items": {"type": "string"}},
                    "goals": {"type": "string"},
                },
                "required": ["businessName", "industry", "employees", "painPoints", "goals"],
            },
        },
    },
    {
        "type": "function",
        "function": {
            "name": "collectContactInfo",
            "description": "Collects the visitor's contact details so LocalEdgeAI can follow up.",
            "parameters": {
                "type": "object",
                "properties": {
                    "firstName": {"type": "string"},
                    "lastName": {"type": "string"},
                    "email": {"type": "string"},
                    "phone": {"type": "string"},
                },
                "required": ["firstName", "lastName", "email"],
            },
        },
    },
]


class AssessmentServiceError(Exception):
    """Base exception for assessment failures."""

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.recoverable = recoverable


def extract_business_name(history: list[dict[str, Any]]) -> str:
    """Best-effort business name from earlier chat turns."""
    for message in history:
        content = message.get("content")
        if isinstance(content, str):
            match = _BUSINESS_NAME.search(content)
            if match:
                return match.group(1).strip()
    return UNKNOWN_BUSINESS


def _summary_request(biz_info: dict[str, Any]) -> str:
    return (
        "Please create a LocalEdgeAI proposal for this business:\n\n"
        f"Business: {biz_info.get('businessName')}\n"
        f"Industry: {biz_info.get('industry')}\n"
        f"Employees: {biz_info.get('employees')}\n"
        f"Pain Points: {', '.join(biz_info.get('painPoints') or [])}\n"
        f"Goals: {biz_info.get('goals')}"
    )


class AssessmentService:
    def __init__(self, client: AsyncOpenAI | None = None):
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not settings.OPENAI_API_KEY:
                raise AssessmentServiceError("OPENAI_API_KEY not configured", recoverable=False)
            self._client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY, timeout=settings.OPENAI_TIMEOUT
            )
        return self._client

    async def _complete(self, messages: list[dict[str, Any]], **kwargs):
        """Chat completion with backoff on rate limits and server errors."""
        client = self._get_client()
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES):
            try:
                response = await client.chat.completions.create(
                    model=settings.OPENAI_MODEL, messages=messages, **kwargs
                )
                if not response.choices:
                    raise AssessmentServiceError("Empty response from OpenAI API")
                return response.choices[0].message

            except openai.RateLimitError as e:
                last_error = e
                wait_time = min(2**attempt, 30)
                logger.warning(
                    "OpenAI rate limit hit, retrying", attempt=attempt + 1, wait_time=wait_time
                )
                if attempt < MAX_RETRIES - 1:
                    await asyncio.sleep(wait_time)

            except openai.APITimeoutError as e:
                last_error = e
                logger.warning("OpenAI API timeout, retrying", attempt=attempt + 1)

            except openai.APIError as e:
                last_error = e
                status_code = getattr(e, "status_code", None)
                if status_code and 400 <= status_code < 500:
                    logger.error("OpenAI client error (not retrying)", error=str(e))
                    break
                logger.warning("OpenAI API error, retrying", attempt=attempt + 1, error=str(e))

        logger.error("OpenAI call failed after retries", final_error=str(last_error))
        raise AssessmentServiceError(f"OpenAI request failed: {last_error}") from last_error

    async def generate_summary(self, biz_info: dict[str, Any]) -> str:
        message = await self._complete(
            [
                {"role": "system", "content": SUMMARY_SYSTEM_PROMPT},
                {"role": "user", "content": _summary_request(biz_info)},
            ]
        )
        return message.content or ""

    async def converse(self, history: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Advance the assessment chat by one turn.

        Returns one of three shapes:
            {"reply": str, "completed": False}
            {"bizInfo": {...}, "summary": str, "completed": True, "stage": "assessment_complete"}
            {"contactInfo": {...}, "completed": True, "stage": "contact_collected", "message": str}
        """
        message = await self._complete(
            [{"role": "system", "content": SYSTEM_PROMPT}, *history],
            tools=TOOLS,
            tool_choice="auto",
        )

        tool_call = message.tool_calls[0] if message.tool_calls else None
        if tool_call is None:
            return {"reply": message.content, "completed": False}

        try:
            arguments = json.loads(tool_call.function.arguments or "{}")
        except json.JSONDecodeError as e:
            raise AssessmentServiceError(f"Malformed tool arguments: {e}") from e

        name = tool_call.function.name
        logger.info("Assessment tool called", tool=name)

        if name == "collectBusinessInfo":
            await self._save_assessment(arguments)
            summary = await self.generate_summary(arguments)
            return {
                "bizInfo": arguments,
                "summary": summary,
                "completed": True,
                "stage": "assessment_complete",
            }

        if name == "collectContactInfo":
            await self._save_contact(arguments, extract_business_name(history))
            first_name = arguments.get("firstName") or "there"
            return {
                "contactInfo": arguments,
                "completed": True,
                "stage": "contact_collected",
                "message": (
                    f"Thank you, {first_name}! We've received your contact information and "
                    "will reach out to you within 24 hours to discuss how LocalEdgeAI can help "
                    "transform your business with AI solutions."
                ),
            }

        logger.warning("Unknown assessment tool", tool=name)
        return {"reply": message.content, "completed": False}

    async def _save_assessment(self, biz_info: dict[str, Any]) -> None:
        # A storage failure must not cost the visitor their proposal
        try:
            await LeadRepository.save_assessment(
                business_name=biz_info.get("businessName") or UNKNOWN_BUSINESS,
                industry=biz_info.get("industry") or "",
                employees=int(biz_info.get("employees") or 0),
                pain_points=list(biz_info.get("painPoints") or []),
                goals=biz_info.get("goals") or "",
            )
        except DatabaseError as e:
            logger.error("Failed to save assessment", error=str(e))

    async def _save_contact(self, contact_info: dict[str, Any], business_name: str) -> None:
        try:
            await LeadRepository.save_submission(
                first_name=contact_info.get("firstName") or "",
                last_name=contact_info.get("lastName") or "",
                email=contact_info.get("email") or "",
                phone=contact_info.get("phone"),
                company=business_name,
                message="Requested follow-up after AI assessment",
            )
        except DatabaseError as e:
            logger.error("Failed to save assessment contact request", error=str(e))


assessment_service = AssessmentService()

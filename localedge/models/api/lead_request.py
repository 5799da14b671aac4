# localedge/models/api/lead_request.py
"""
Marketing site request models (AI assessment chat, contact form).
"""

from typing import Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(..., max_length=4000)


class AssessmentRequest(BaseModel):
    history: list[ChatMessage] = Field(default_factory=list, max_length=100)


class ContactSubmissionRequest(BaseModel):
    first_name: str = Field(..., min_length=1, max_length=100)
    last_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", max_length=320)
    phone: str | None = Field(default=None, max_length=32)
    company: str | None = Field(default=None, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    is_urgent: bool = False

# localedge/models/api/message_request.py
"""
Console SMS request models.
"""

from pydantic import BaseModel, Field


class ManualSMSRequest(BaseModel):
    """A text typed by staff in the console."""

    message: str = Field(..., description="Body; at most 1600 characters once trimmed")
    contact_id: str | None = Field(default=None, description="Existing contact")
    contact_phone: str | None = Field(
        default=None, max_length=32, description="E.164 number when texting without a contact"
    )

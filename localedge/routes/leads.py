"""
Public marketing-site endpoints: the AI assessment chat and the contact form.
No authentication.
"""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from localedge.db.helpers import DatabaseError
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.api.lead_request import AssessmentRequest, ContactSubmissionRequest
from localedge.repositories.lead_repository import LeadRepository
from localedge.services.assessment_service import AssessmentServiceError, assessment_service

logger = get_logger(__name__)

router = APIRouter(tags=["leads"])


@router.post("/ai-assessment")
async def ai_assessment(request: AssessmentRequest):
    history = [message.model_dump() for message in request.history]
    try:
        return await assessment_service.converse(history)
    except AssessmentServiceError as e:
        logger.error("AI assessment failed", error=str(e), recoverable=e.recoverable)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "AI request failed", "details": str(e)},
        )


@router.post("/contact-submissions", status_code=status.HTTP_201_CREATED)
async def create_contact_submission(request: ContactSubmissionRequest):
    try:
        submission_id = await LeadRepository.save_submission(**request.model_dump())
    except DatabaseError as e:
        logger.error("Failed to save contact submission", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit your message. Please try again.",
        ) from e
    return {"id": submission_id}

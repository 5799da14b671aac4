"""
Admin console routes: review leads from the marketing site.
Requires a user holding the `admin` role.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from localedge.auth.verify import require_admin
from localedge.infrastructure.observability.logging import get_logger
from localedge.repositories.lead_repository import LeadRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/submissions")
async def list_submissions(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    claims: dict = Depends(require_admin),
):
    submissions = await LeadRepository.list_submissions(limit=limit, offset=offset)
    return {"submissions": submissions, "count": len(submissions)}


@router.delete("/submissions/{submission_id}")
async def delete_submission(submission_id: str, claims: dict = Depends(require_admin)):
    if not await LeadRepository.delete_submission(submission_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    logger.info("Contact submission deleted", submission_id=submission_id, admin=claims.get("sub"))
    return {"deleted": True}


@router.get("/assessments")
async def list_assessments(
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    claims: dict = Depends(require_admin),
):
    assessments = await LeadRepository.list_assessments(limit=limit, offset=offset)
    return {"assessments": assessments, "count": len(assessments)}

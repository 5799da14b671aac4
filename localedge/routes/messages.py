"""
Console messaging: staff texting a contact from the business's number.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from localedge.auth.verify import current_business
from localedge.db.helpers import DatabaseError
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.api.message_request import ManualSMSRequest
from localedge.models.domain.appointment_domain import Business
from localedge.services.telephony.sms_service import SMSServiceError, sms_service

logger = get_logger(__name__)

router = APIRouter(prefix="/messages", tags=["messages"])


@router.post("/sms")
async def send_sms(request: ManualSMSRequest, business: Business = Depends(current_business)):
    try:
        result = await sms_service.send_manual(
            business,
            message=request.message,
            contact_id=request.contact_id,
            contact_phone=request.contact_phone,
        )
    except SMSServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message) from e
    except DatabaseError as e:
        logger.error("Manual SMS lookup failed", business_id=business.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to send message"
        ) from e

    return {"success": True, "messageSid": result["message_sid"], "sentTo": result["sent_to"]}

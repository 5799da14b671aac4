"""
Calendar API Routes
Google Calendar connection (OAuth) and appointment sync for the business.
"""

from html import escape

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse

from localedge.auth.verify import current_business
from localedge.config import settings
from localedge.db.helpers import DatabaseError
from localedge.infrastructure.observability.logging import get_logger
from localedge.models.api.appointment_request import BulkSyncRequest
from localedge.models.api.appointment_response import CalendarSyncResponse
from localedge.models.domain.appointment_domain import Business
from localedge.services.calendar.sync_service import CalendarConnectionError, calendar_sync_service

logger = get_logger(__name__)

router = APIRouter(prefix="/calendar", tags=["calendar"])

_CALLBACK_PAGE = """<!DOCTYPE html>
<html>
  <head><title>{title}</title></head>
  <body>
    <h1>{title}</h1>
    <p>{message}</p>
    <script>if (window.opener) {{ window.opener.postMessage({payload}, "*"); window.close(); }}</script>
  </body>
</html>"""


def _callback_page(title: str, message: str, *, connected: bool, status_code: int) -> HTMLResponse:
    payload = '{"type": "google-calendar", "connected": %s}' % ("true" if connected else "false")
    return HTMLResponse(
        _CALLBACK_PAGE.format(title=escape(title), message=escape(message), payload=payload),
        status_code=status_code,
    )


@router.get("/status")
async def get_calendar_status(business: Business = Depends(current_business)):
    """Whether the business has a connected Google Calendar."""
    try:
        return await calendar_sync_service.status(business.id)
    except DatabaseError as e:
        logger.error("Error getting calendar status", business_id=business.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get calendar status",
        ) from e


@router.get("/auth-url")
async def get_auth_url(business: Business = Depends(current_business)):
    """Google consent URL to open in a popup."""
    try:
        url = calendar_sync_service.build_auth_url(business.id, settings.calendar_redirect_uri())
    except CalendarConnectionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return {"auth_url": url}


@router.get("/callback", response_class=HTMLResponse)
async def oauth_callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
):
    """Google redirects here after consent. Unauthenticated; trust comes from the signed state."""
    if error:
        logger.warning("Calendar consent denied", error=error)
        return _callback_page(
            "Connection cancelled", f"Google returned: {error}", connected=False, status_code=400
        )
    if not code or not state:
        return _callback_page(
            "Connection failed", "Missing code or state", connected=False, status_code=400
        )

    try:
        await calendar_sync_service.handle_callback(code, state)
    except CalendarConnectionError as e:
        logger.warning("Calendar callback rejected", error_code=e.error_code, error=str(e))
        return _callback_page("Connection failed", str(e), connected=False, status_code=400)
    except DatabaseError as e:
        logger.error("Failed to store calendar tokens", error=str(e))
        return _callback_page(
            "Connection failed", "Could not save the connection", connected=False, status_code=500
        )

    return _callback_page(
        "Google Calendar connected",
        "You can close this window.",
        connected=True,
        status_code=200,
    )


@router.delete("/connection")
async def disconnect_calendar(business: Business = Depends(current_business)):
    removed = await calendar_sync_service.disconnect(business.id)
    return {"disconnected": removed}


@router.post("/sync/{appointment_id}", response_model=CalendarSyncResponse)
async def sync_appointment(appointment_id: str, business: Business = Depends(current_business)):
    result = await calendar_sync_service.sync_appointment(business.id, appointment_id)
    if result.skipped:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Google Calendar not connected"
        )
    return CalendarSyncResponse(**result.to_dict())


@router.post("/sync-all")
async def sync_all(business: Business = Depends(current_business)):
    """Push every unsynced pending or confirmed appointment."""
    try:
        return await calendar_sync_service.sync_all(business.id)
    except CalendarConnectionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except DatabaseError as e:
        logger.error("Error loading appointments to sync", business_id=business.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to sync appointments",
        ) from e


@router.post("/sync-many")
async def sync_many(request: BulkSyncRequest, business: Business = Depends(current_business)):
    return await calendar_sync_service.sync_many(business.id, request.appointment_ids)

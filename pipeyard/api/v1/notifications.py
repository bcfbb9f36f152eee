"""Notification outbox API endpoints"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pipeyard.api import deps
from pipeyard.models.auth import User
from pipeyard.schemas.common import SuccessResponse
from pipeyard.services.notification_service import NotificationDispatcher

router = APIRouter()


@router.post("/process", response_model=SuccessResponse)
def process_notifications(
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.require_admin),
):
    """Deliver pending notifications now; failed rows stay queued for retry."""
    with NotificationDispatcher.from_settings(db) as dispatcher:
        counts = dispatcher.process_queue(limit=limit)
    return SuccessResponse(
        message=f"Processed {counts['processed']} notifications, {counts['failed']} failed",
        data=counts,
    )

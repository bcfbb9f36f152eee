"""
API Dependencies
Common dependencies for API endpoints
"""
from typing import Callable, Optional

from fastapi import Depends

from pipeyard.core.database import SessionLocal, get_db
from pipeyard.core.exceptions import InsufficientPermissionsError
from pipeyard.core.security import get_current_user, require_admin
from pipeyard.models.auth import User
from pipeyard.services.notification_service import NotificationDispatcher

__all__ = [
    "get_db",
    "get_current_user",
    "require_admin",
    "get_company_scope",
    "require_customer",
    "get_notification_dispatch",
]


async def get_company_scope(
    current_user: User = Depends(get_current_user)
) -> Optional[int]:
    """
    Company the caller may act for

    Admins are not scoped (None); customers are scoped to their company.
    """
    if current_user.is_admin:
        return None
    if current_user.company_id is None:
        raise InsufficientPermissionsError(
            f"User {current_user.username} is not linked to a company",
            username=current_user.username,
        )
    return current_user.company_id


async def require_customer(
    current_user: User = Depends(get_current_user)
) -> User:
    """Customer user with a company"""
    if current_user.company_id is None:
        raise InsufficientPermissionsError(
            "Only customer users can submit storage requests",
            username=current_user.username,
        )
    return current_user


def dispatch_pending_notifications():
    """Drain the notification outbox in its own session"""
    db = SessionLocal()
    try:
        with NotificationDispatcher.from_settings(db) as dispatcher:
            dispatcher.process_queue()
    finally:
        db.close()


def get_notification_dispatch() -> Callable[[], None]:
    """Post-commit notification dispatch, scheduled as a background task"""
    return dispatch_pending_notifications

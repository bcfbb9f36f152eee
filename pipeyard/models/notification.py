"""
Notification Queue Model
Outbox rows written with the workflow change and delivered afterwards
"""
from sqlalchemy import Column, String, Integer, Boolean, Text, JSON, TIMESTAMP

from pipeyard.core.database import Base
from pipeyard.models.auth import utcnow


class NotificationQueue(Base):
    """Pending email/Slack notification"""
    __tablename__ = "notification_queue"

    id = Column(Integer, primary_key=True, autoincrement=True)
    notification_type = Column(String(50), nullable=False, index=True)
    payload = Column(JSON, nullable=False)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text)
    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    processed_at = Column(TIMESTAMP(timezone=True))

"""
Authentication and Tenancy Models
Maps to companies and users tables
"""
from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, TIMESTAMP
from sqlalchemy.orm import relationship

from pipeyard.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Company(Base):
    """Customer company - the tenant that owns requests and inventory"""
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    domain = Column(String(100), unique=True, index=True)

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)

    users = relationship("User", back_populates="company")
    storage_requests = relationship("StorageRequest", back_populates="company")


class User(Base):
    """System users: customer staff (company_id set) and yard admins"""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(50), unique=True, nullable=False, index=True)
    email = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=False)

    company_id = Column(Integer, ForeignKey("companies.id"), nullable=True, index=True)
    is_active = Column(Boolean, default=True)
    is_admin = Column(Boolean, default=False)

    # Security
    last_login = Column(TIMESTAMP(timezone=True))
    failed_logins = Column(Integer, default=0)
    locked_until = Column(TIMESTAMP(timezone=True))

    created_at = Column(TIMESTAMP(timezone=True), default=utcnow)
    updated_at = Column(TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow)

    company = relationship("Company", back_populates="users")

    @property
    def is_locked(self) -> bool:
        """Check if account is locked"""
        if self.locked_until is None:
            return False
        locked_until = self.locked_until
        if locked_until.tzinfo is None:
            locked_until = locked_until.replace(tzinfo=timezone.utc)
        return locked_until > utcnow()

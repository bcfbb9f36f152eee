"""
Authentication Service
User lookup, credential checks, lockout and token issue
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from pipeyard.core.config import settings
from pipeyard.core.exceptions import ValidationError
from pipeyard.core.logging import get_logger
from pipeyard.core.security import create_access_token, get_password_hash, verify_password
from pipeyard.models.auth import User

security_logger = get_logger("security")


class AuthService:
    """Service for authentication and user management operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_user_by_username(self, username: str) -> Optional[User]:
        return self.db.query(User).filter(User.username == username).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    def create_user(self, username: str, email: str, full_name: str, password: str,
                    company_id: Optional[int] = None, is_admin: bool = False) -> User:
        """Create a customer user (with company) or a yard admin (without)"""
        if self.get_user_by_username(username):
            raise ValidationError(f"Username {username} already registered", field="username")
        if self.get_user_by_email(email):
            raise ValidationError(f"Email {email} already registered", field="email")

        user = User(
            username=username,
            email=email,
            full_name=full_name,
            password_hash=get_password_hash(password),
            company_id=company_id,
            is_admin=is_admin,
            is_active=True,
            failed_logins=0,
        )
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)

        security_logger.info(f"User created: {user.username} (admin={is_admin}, company={company_id})")
        return user

    def authenticate_user(self, username: str, password: str) -> Optional[User]:
        """
        Authenticate user credentials

        Repeated failures lock the account for LOCKOUT_MINUTES once
        MAX_FAILED_LOGINS is reached.
        """
        user = self.get_user_by_username(username)
        if not user or not user.is_active or user.is_locked:
            security_logger.info(f"Login refused for {username!r}")
            return None

        if not verify_password(password, user.password_hash):
            user.failed_logins = (user.failed_logins or 0) + 1
            if user.failed_logins >= settings.MAX_FAILED_LOGINS:
                user.locked_until = datetime.now(timezone.utc) + timedelta(minutes=settings.LOCKOUT_MINUTES)
                security_logger.warning(f"Account {username} locked after {user.failed_logins} failed logins")
            self.db.commit()
            return None

        user.failed_logins = 0
        user.locked_until = None
        user.last_login = datetime.now(timezone.utc)
        self.db.commit()
        security_logger.info(f"Login: {username}")
        return user

    def create_user_session(self, user: User) -> Dict[str, Any]:
        """Issue an access token carrying the actor and company claims"""
        access_token = create_access_token(
            data={"sub": user.username, "company_id": user.company_id, "is_admin": user.is_admin},
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )

        return {
            "access_token": access_token,
            "token_type": "bearer",
            "user": {
                "id": user.id,
                "username": user.username,
                "email": user.email,
                "full_name": user.full_name,
                "company_id": user.company_id,
                "is_admin": user.is_admin,
            }
        }

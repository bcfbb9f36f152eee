"""
Authentication schemas for request/response validation
"""
from typing import Optional, Dict, Any
from pydantic import BaseModel, EmailStr, ConfigDict
from datetime import datetime


class Token(BaseModel):
    """JWT token response"""
    access_token: str
    token_type: str = "bearer"
    user: Optional[Dict[str, Any]] = None


class UserResponse(BaseModel):
    """User response"""
    id: int
    username: str
    email: EmailStr
    full_name: str
    company_id: Optional[int] = None
    is_active: bool
    is_admin: bool
    last_login: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

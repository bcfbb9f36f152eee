"""
Authentication API endpoints
Login and current user
"""
from typing import Any
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from pipeyard.api import deps
from pipeyard.models.auth import User
from pipeyard.schemas.auth import Token, UserResponse
from pipeyard.services.auth_service import AuthService

router = APIRouter()


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(deps.get_db)
) -> Any:
    """
    OAuth2 compatible token login
    """
    service = AuthService(db)

    user = service.get_user_by_username(form_data.username)
    if user is not None and user.is_locked:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail="Account is locked. Please contact administrator."
        )

    user = service.authenticate_user(form_data.username, form_data.password)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return service.create_user_session(user)


@router.get("/me", response_model=UserResponse)
def read_current_user(
    current_user: User = Depends(deps.get_current_user)
) -> Any:
    """
    Get current user info
    """
    return current_user

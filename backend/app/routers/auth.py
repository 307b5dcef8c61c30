"""
Compliance Tracker - Authentication Router
Handles user registration, login and session verification.
"""
from uuid import uuid4
from typing import Optional
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import UserDB
from ..auth import (
    hash_password, authenticate, create_access_token, get_current_user,
    get_user_by_email, normalize_email,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    name: Optional[str] = None

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: Optional[str] = None


class AuthResponse(BaseModel):
    token: str
    token_type: str = "bearer"
    user: UserResponse


def _auth_response(user: UserDB) -> AuthResponse:
    return AuthResponse(
        token=create_access_token(user.id, user.email),
        user=UserResponse(id=user.id, email=user.email, name=user.name),
    )


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(request: RegisterRequest, db: Session = Depends(get_db)):
    """
    Register a new user account and sign them in.
    """
    if get_user_by_email(db, request.email) is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists"
        )

    user = UserDB(
        id=str(uuid4()),
        email=normalize_email(request.email),
        name=request.name,
        password_hash=hash_password(request.password)
    )

    db.add(user)
    db.commit()

    logger.info(f"User registered: {user.email}")
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
async def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Exchange email + password for a session token.
    """
    user = authenticate(db, request.email, request.password)
    if user is None:
        logger.info(f"Failed login for {request.email}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return _auth_response(user)


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: UserDB = Depends(get_current_user)):
    return UserResponse(id=current_user.id, email=current_user.email, name=current_user.name)

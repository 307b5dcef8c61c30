"""
Compliance Tracker - Authentication Utilities

Accounts are identified by email (stored lower-cased). A session is a bearer
JWT carrying the user id and email; every compliance, to-do and nexus route
resolves it back to a UserDB row through get_current_user.
"""
import os
from datetime import datetime, timedelta
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .models.db_models import UserDB

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "compliance-tracker-secret-key-change-in-production")
ALGORITHM = "HS256"
TOKEN_TTL = timedelta(days=int(os.getenv("JWT_EXPIRE_DAYS", "7")))

security = HTTPBearer()


def normalize_email(email: str) -> str:
    return email.strip().lower()


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """False for a wrong password or an unreadable stored hash."""
    try:
        return bcrypt.checkpw(plain_password.encode('utf-8'), hashed_password.encode('utf-8'))
    except ValueError:
        return False


def get_user_by_email(db: Session, email: str) -> Optional[UserDB]:
    return db.query(UserDB).filter(UserDB.email == normalize_email(email)).first()


def authenticate(db: Session, email: str, password: str) -> Optional[UserDB]:
    """The user owning these credentials, or None."""
    user = get_user_by_email(db, email)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def create_access_token(user_id: str, email: str, now: Optional[datetime] = None) -> str:
    """Signed session token: sub = user id, email, exp = now + TOKEN_TTL."""
    issued = now or datetime.utcnow()
    claims = {
        "sub": user_id,
        "email": email,
        "exp": issued + TOKEN_TTL,
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """Claims of a valid token. None if the signature is bad or it has expired."""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> UserDB:
    """Dependency resolving the bearer token to its user. 401 otherwise."""
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    claims = decode_token(credentials.credentials)
    if not claims or not claims.get("sub"):
        raise unauthorized

    user = db.query(UserDB).filter(UserDB.id == claims["sub"]).first()
    if user is None:
        raise unauthorized
    return user

# app/core/security.py
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.config import settings
from app.services.authorization import AuthContext, Role

security = HTTPBearer()

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return encoded_jwt

def decode_access_token(token: str) -> Dict[str, Any]:
    return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])

def context_from_claims(claims: Dict[str, Any]) -> AuthContext:
    """
    Build the caller identity from verified token claims.

    Students must carry a student_id and advisors a lecturer_id.
    """
    role = Role(claims["role"])
    context = AuthContext(
        user_id=str(claims["sub"]),
        role=role,
        student_id=claims.get("student_id"),
        lecturer_id=claims.get("lecturer_id"),
    )
    if role == Role.STUDENT and not context.student_id:
        raise ValueError("student token without student_id")
    if role == Role.ADVISOR and not context.lecturer_id:
        raise ValueError("advisor token without lecturer_id")
    return context

async def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> AuthContext:
    """
    Resolve the bearer token into an AuthContext
    """
    token = credentials.credentials

    try:
        return context_from_claims(decode_access_token(token))
    except (JWTError, KeyError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

"""
Share Link Engine - Operator Authentication

Operators (organisers and admins) sign in with a password and receive a
short-lived JWT. That JWT gates issuing share links and reading their
history. Public visitors never hold one; a share link secret is their only
credential, and an operator JWT is never accepted in its place.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from .models.db_models import AccessTokenDB, OperatorDB

# Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "share-link-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_HOURS = int(os.getenv("ACCESS_TOKEN_EXPIRE_HOURS", "12"))

ORGANISER = "organiser"
ADMIN = "admin"
OPERATOR_ROLES = (ORGANISER, ADMIN)

# "typ" claim stamped on every operator session
OPERATOR_TOKEN_TYPE = "operator"

# Bearer token security
security = HTTPBearer()


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    password_bytes = password.encode('utf-8')
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password_bytes, salt).decode('utf-8')


def verify_password(plain_password: str, hashed_password: str) -> bool:
    password_bytes = plain_password.encode('utf-8')
    hashed_bytes = hashed_password.encode('utf-8')
    return bcrypt.checkpw(password_bytes, hashed_bytes)


def create_access_token(operator_id: str, email: str, role: str = ORGANISER) -> str:
    """Create an operator session JWT carrying the operator's role."""
    if role not in OPERATOR_ROLES:
        raise ValueError(f"Unknown operator role: {role}")
    expire = datetime.now(timezone.utc) + timedelta(hours=ACCESS_TOKEN_EXPIRE_HOURS)
    to_encode = {
        "sub": operator_id,
        "email": email,
        "role": role,
        "typ": OPERATOR_TOKEN_TYPE,
        "exp": expire
    }
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """
    Decode an operator session JWT.

    Expired, tampered and non-operator tokens all yield None.
    """
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if payload.get("typ") != OPERATOR_TOKEN_TYPE:
        return None
    return payload


def can_manage_share_link(operator: OperatorDB, token: AccessTokenDB) -> bool:
    """Organisers see the links they issued; admins see every link."""
    return operator.role == ADMIN or token.created_by == operator.id


def get_current_operator(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> OperatorDB:
    """
    Dependency to get the current authenticated operator.
    Validates JWT token and fetches operator from database.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = decode_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    operator_id: str = payload.get("sub")
    if operator_id is None:
        raise credentials_exception

    operator = db.query(OperatorDB).filter(OperatorDB.id == operator_id).first()
    if operator is None or operator.role not in OPERATOR_ROLES:
        raise credentials_exception

    return operator


def require_admin(current_operator: OperatorDB = Depends(get_current_operator)) -> OperatorDB:
    """
    Dependency to require admin role.
    Use this on operator provisioning routes.
    """
    if current_operator.role != ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return current_operator

"""
Share Link Engine - Authentication Router
Handles operator login, session verification and operator provisioning.
"""
from uuid import uuid4
import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.db_models import OperatorDB
from ..auth import (
    ORGANISER, OPERATOR_ROLES, hash_password, verify_password, create_access_token,
    get_current_operator, require_admin,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class CreateOperatorRequest(BaseModel):
    email: EmailStr
    username: str
    password: str
    role: str = ORGANISER

    @field_validator('password')
    @classmethod
    def validate_password_strength(cls, v):
        if len(v) < 8:
            raise ValueError('Password must be at least 8 characters')
        return v

    @field_validator('role')
    @classmethod
    def validate_role(cls, v):
        if v not in OPERATOR_ROLES:
            raise ValueError('Role must be organiser or admin')
        return v


class OperatorResponse(BaseModel):
    id: str
    email: str
    username: str
    role: str = ORGANISER


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("/login", response_model=TokenResponse)
def login(request: LoginRequest, db: Session = Depends(get_db)):
    """
    Authenticate an operator and return a JWT token.
    """
    operator = db.query(OperatorDB).filter(OperatorDB.email == request.email).first()

    if not operator or not verify_password(request.password, operator.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(operator.id, operator.email, operator.role or ORGANISER)

    logger.info(f"Operator logged in: {request.email}")
    return TokenResponse(access_token=access_token)


@router.get("/me", response_model=OperatorResponse)
def get_me(current_operator: OperatorDB = Depends(get_current_operator)):
    return OperatorResponse(
        id=current_operator.id,
        email=current_operator.email,
        username=current_operator.username,
        role=current_operator.role or ORGANISER,
    )


@router.post("/operators", response_model=OperatorResponse, status_code=status.HTTP_201_CREATED)
def create_operator(
    request: CreateOperatorRequest,
    db: Session = Depends(get_db),
    admin: OperatorDB = Depends(require_admin),
):
    """
    Create an operator account. Admin only.
    """
    existing = db.query(OperatorDB).filter(
        (OperatorDB.email == request.email) | (OperatorDB.username == request.username)
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email or username already registered"
        )

    operator = OperatorDB(
        id=str(uuid4()),
        email=request.email,
        username=request.username,
        password_hash=hash_password(request.password),
        role=request.role,
    )
    db.add(operator)
    db.commit()

    logger.info(f"Operator {request.email} created by {admin.email}")
    return OperatorResponse(
        id=operator.id,
        email=operator.email,
        username=operator.username,
        role=operator.role,
    )

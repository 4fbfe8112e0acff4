"""
Share Link API Routes

Operator-facing endpoints: issue share links, track completion, and read
the version history behind the public forms.
"""
import logging
import os
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import can_manage_share_link, get_current_operator
from ..database import get_db
from ..models.db_models import OperatorDB, ProjectDB
from ..models.share import FactKind, ResourceType
from ..services.share import (
    AuditTrail,
    EmptyScopeError,
    InvalidDurationError,
    ShareProgressService,
    TokenGenerationError,
    TokenIssuer,
    TokenStore,
)
from ..services.share.audit_trail import record_to_dict

logger = logging.getLogger(__name__)

DEFAULT_DURATION = os.getenv("SHARE_DEFAULT_DURATION", "48h")

router = APIRouter(prefix="/share-links", tags=["share-links"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class IssueShareLinkRequest(BaseModel):
    """Request to issue a new share link."""
    resource_type: ResourceType = Field(..., description="MAPPING_SHEET or AUDIT_COMPLIANCE")
    parent_resource_id: str = Field(..., description="Project the link is scoped under")
    sub_resource_ids: List[str] = Field(default_factory=list, description="Employers the visitor may see and update")
    duration_class: str = Field(default=DEFAULT_DURATION, description="24h, 48h, 72h or 7d")


class ShareLinkResponse(BaseModel):
    token_id: str
    secret: str
    resource_type: str
    expires_at: str
    share_path: str


# =============================================================================
# OPERATOR ENDPOINTS
# =============================================================================

@router.post("", response_model=ShareLinkResponse, status_code=status.HTTP_201_CREATED)
def issue_share_link(
    request: IssueShareLinkRequest,
    db: Session = Depends(get_db),
    current_operator: OperatorDB = Depends(get_current_operator),
):
    """
    Issue a share link for a subset of a project's employers.

    The secret is returned once here and never again.
    """
    project = db.query(ProjectDB).filter(ProjectDB.id == request.parent_resource_id).first()
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")

    try:
        token = TokenIssuer(db).issue(
            resource_type=request.resource_type,
            parent_resource_id=project.id,
            scope_allow_list=request.sub_resource_ids,
            duration_class=request.duration_class,
            created_by=current_operator.id,
        )
    except (EmptyScopeError, InvalidDurationError) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except TokenGenerationError as e:
        logger.error(f"Share link issuance failed for project {project.id}: {e}")
        raise HTTPException(status_code=503, detail="Could not generate link, please retry")

    resource_type = ResourceType(token.resource_type)
    return ShareLinkResponse(
        token_id=token.id,
        secret=token.secret,
        resource_type=resource_type.value,
        expires_at=token.expires_at.isoformat(),
        share_path=f"/public/{resource_type.value}/{token.secret}",
    )


@router.get("", response_model=dict)
def list_share_links(
    db: Session = Depends(get_db),
    current_operator: OperatorDB = Depends(get_current_operator),
):
    """Links issued by the current operator, newest first, with progress."""
    summaries = ShareProgressService(db).list_issued(current_operator.id)
    return {
        "share_links": [s.to_dict() for s in summaries],
        "total": len(summaries),
    }


@router.get("/history/{sub_resource_id}/{fact_kind}", response_model=dict)
def get_fact_history(
    sub_resource_id: str,
    fact_kind: str,
    db: Session = Depends(get_db),
    current_operator: OperatorDB = Depends(get_current_operator),
):
    """Every version of one fact, oldest first."""
    try:
        kind = FactKind(fact_kind)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Unknown fact kind: {fact_kind}")

    records = AuditTrail(db).history(sub_resource_id, kind)
    return {
        "sub_resource_id": sub_resource_id,
        "fact_kind": kind.value,
        "versions": [record_to_dict(r) for r in records],
    }


@router.get("/{token_id}", response_model=dict)
def get_share_link(
    token_id: str,
    db: Session = Depends(get_db),
    current_operator: OperatorDB = Depends(get_current_operator),
):
    """Completion summary and submitted rows for one link."""
    token = TokenStore(db).get(token_id)
    if not token or not can_manage_share_link(current_operator, token):
        raise HTTPException(status_code=404, detail="Share link not found")

    summary = ShareProgressService(db).summarize(token).to_dict()
    summary["submissions"] = [record_to_dict(r) for r in AuditTrail(db).submissions_via(token.id)]
    return summary

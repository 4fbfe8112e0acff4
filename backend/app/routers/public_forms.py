"""
Public Form API Routes

Unauthenticated endpoints behind a share link. The secret in the path is
the only credential; every call re-validates it against the token store.
"""
import logging
from typing import Any, List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session, sessionmaker

from ..database import get_db, get_session_factory
from ..models.share import ResourceType, Scope, TokenErrorKind, UnitStatus
from ..services.share import (
    ParentResourceNotFoundError,
    PersistenceError,
    ScopedReadProjector,
    ShareProgressService,
    TokenError,
    TokenStore,
    TokenValidator,
    VersionedSubmissionEngine,
    record_use,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/public", tags=["public"])


TOKEN_ERROR_STATUS = {
    TokenErrorKind.NOT_FOUND: 404,
    TokenErrorKind.EXPIRED: 410,
    TokenErrorKind.TYPE_MISMATCH: 400,
}


# =============================================================================
# REQUEST MODELS
# =============================================================================

class SubmissionItem(BaseModel):
    """One proposed update. The payload is validated per fact kind by the engine."""
    sub_resource_id: str
    fact_kind: str
    payload: Optional[Any] = None


class SubmitRequest(BaseModel):
    submissions: List[SubmissionItem] = Field(default_factory=list)


# =============================================================================
# HELPERS
# =============================================================================

def _token_http_error(e: TokenError) -> HTTPException:
    return HTTPException(status_code=TOKEN_ERROR_STATUS[e.kind], detail=e.user_message)


def _unavailable() -> HTTPException:
    return HTTPException(status_code=503, detail="Service temporarily unavailable, please retry")


def _validate(db: Session, secret: str, resource_type: ResourceType) -> Scope:
    try:
        return TokenValidator(db).validate(secret, resource_type)
    except TokenError as e:
        raise _token_http_error(e)
    except PersistenceError:
        raise _unavailable()


# =============================================================================
# PUBLIC ENDPOINTS
# =============================================================================

@router.get("/{resource_type}/{secret}", response_model=dict)
def get_form(
    resource_type: ResourceType,
    secret: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Load the public form: parent project summary plus the current facts of
    every employer the link was scoped to.
    """
    scope = _validate(db, secret, resource_type)

    try:
        view = ScopedReadProjector(db).project(scope)
    except ParentResourceNotFoundError:
        logger.warning(f"Share token {scope.token_id} points at a missing project")
        raise HTTPException(status_code=404, detail="This link is not valid.")

    background_tasks.add_task(record_use, session_factory, scope.token_id)
    return view.to_dict()


@router.post("/{resource_type}/{secret}/submissions", response_model=dict)
def submit_form(
    resource_type: ResourceType,
    secret: str,
    request: SubmitRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """
    Submit updates for one or more employers.

    Each unit commits or fails on its own; the response reports every unit
    in submission order. A 200 can carry rejected units.
    """
    scope = _validate(db, secret, resource_type)

    try:
        outcomes = VersionedSubmissionEngine(db).submit(
            scope, [item.model_dump() for item in request.submissions]
        )
    except TokenError as e:
        raise _token_http_error(e)
    except PersistenceError:
        raise _unavailable()

    background_tasks.add_task(record_use, session_factory, scope.token_id)

    committed = sum(1 for o in outcomes if o.status == UnitStatus.COMMITTED)
    return {
        "outcomes": [o.to_dict() for o in outcomes],
        "committed": committed,
        "rejected": len(outcomes) - committed,
        "retryable": sum(1 for o in outcomes if o.retryable),
    }


@router.get("/{resource_type}/{secret}/summary", response_model=dict)
def get_summary(
    resource_type: ResourceType,
    secret: str,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    session_factory: sessionmaker = Depends(get_session_factory),
):
    """Completion summary for the visitor's closing screen."""
    scope = _validate(db, secret, resource_type)

    token = TokenStore(db).get(scope.token_id)
    if token is None:
        raise _token_http_error(TokenError(TokenErrorKind.NOT_FOUND))

    progress = ShareProgressService(db).summarize(token)
    background_tasks.add_task(record_use, session_factory, scope.token_id)
    return {
        "resource_type": progress.resource_type.value,
        "expires_at": progress.expires_at.isoformat(),
        "total_sub_resources": progress.total_sub_resources,
        "submitted_sub_resources": progress.submitted_sub_resources,
        "pending_sub_resources": progress.pending_sub_resources,
        "message": progress.message,
    }

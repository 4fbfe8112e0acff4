"""
Share Link Services

Ephemeral public access to a scoped slice of project data:
- TokenIssuer / TokenStore: issue and persist share links
- TokenValidator: secret -> Scope or TokenError
- ScopedReadProjector: public form view, confined to the allow-list
- VersionedSubmissionEngine: append-only, race-safe versioned writes
- AuditTrail / ShareProgressService: operator-facing read models
"""

from .errors import (
    ShareError,
    EmptyScopeError,
    InvalidDurationError,
    TokenGenerationError,
    TokenError,
    ParentResourceNotFoundError,
    PersistenceError,
)
from .expiry import resolve_expiry
from .token_store import TokenStore
from .token_issuer import TokenIssuer
from .token_validator import TokenValidator, record_use
from .projector import ScopedReadProjector
from .submission_engine import VersionedSubmissionEngine
from .audit_trail import AuditTrail
from .progress import ShareProgressService

__all__ = [
    'ShareError',
    'EmptyScopeError',
    'InvalidDurationError',
    'TokenGenerationError',
    'TokenError',
    'ParentResourceNotFoundError',
    'PersistenceError',
    'resolve_expiry',
    'TokenStore',
    'TokenIssuer',
    'TokenValidator',
    'record_use',
    'ScopedReadProjector',
    'VersionedSubmissionEngine',
    'AuditTrail',
    'ShareProgressService',
]

"""Share Link Engine - Data Models"""
from .share import (
    # Enums
    ResourceType, DurationClass, FactKind, TokenErrorKind, UnitStatus, RejectionReason, ShareStatus,
    RESOURCE_FACT_KINDS,
    # Value objects
    Scope, SubmissionUnit, UnitOutcome,
    FactState, SubResourceView, ProjectionView, ShareProgress,
)

__all__ = [
    "ResourceType", "DurationClass", "FactKind", "TokenErrorKind", "UnitStatus", "RejectionReason", "ShareStatus",
    "RESOURCE_FACT_KINDS",
    "Scope", "SubmissionUnit", "UnitOutcome",
    "FactState", "SubResourceView", "ProjectionView", "ShareProgress",
]

"""
Share Link Engine - Domain Types

Value objects passed between the token services, the projector and the
submission engine. ORM rows live in db_models; these types never touch a
session.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMS
# =============================================================================

class ResourceType(str, Enum):
    """What a share link grants access to."""
    MAPPING_SHEET = "MAPPING_SHEET"
    AUDIT_COMPLIANCE = "AUDIT_COMPLIANCE"


class DurationClass(str, Enum):
    """Enumerated link lifetimes offered to operators."""
    HOURS_24 = "24h"
    HOURS_48 = "48h"
    HOURS_72 = "72h"
    DAYS_7 = "7d"


class FactKind(str, Enum):
    """Named category of versioned data about a sub-resource."""
    # Audit & compliance
    CBUS = "CBUS"
    INCOLINK = "INCOLINK"
    UNION_RESPECT = "UNION_RESPECT"
    SAFETY = "SAFETY"
    SUBCONTRACTOR = "SUBCONTRACTOR"

    # Mapping sheet
    CONTRACTOR_ROLE = "CONTRACTOR_ROLE"
    TRADE_ASSIGNMENT = "TRADE_ASSIGNMENT"


# Which fact kinds a public form of each resource type may read and write
RESOURCE_FACT_KINDS: Dict[ResourceType, List[FactKind]] = {
    ResourceType.AUDIT_COMPLIANCE: [
        FactKind.CBUS,
        FactKind.INCOLINK,
        FactKind.UNION_RESPECT,
        FactKind.SAFETY,
        FactKind.SUBCONTRACTOR,
    ],
    ResourceType.MAPPING_SHEET: [
        FactKind.CONTRACTOR_ROLE,
        FactKind.TRADE_ASSIGNMENT,
    ],
}


class TokenErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    EXPIRED = "EXPIRED"
    TYPE_MISMATCH = "TYPE_MISMATCH"


class UnitStatus(str, Enum):
    COMMITTED = "COMMITTED"
    REJECTED = "REJECTED"


class RejectionReason(str, Enum):
    """Why a single submission unit was not committed."""
    RESOURCE_NOT_IN_SCOPE = "RESOURCE_NOT_IN_SCOPE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONCURRENCY_EXHAUSTED = "CONCURRENCY_EXHAUSTED"
    PERSISTENCE_ERROR = "PERSISTENCE_ERROR"


# Reasons the visitor's client may resubmit unchanged
RETRYABLE_REASONS = frozenset({
    RejectionReason.CONCURRENCY_EXHAUSTED,
    RejectionReason.PERSISTENCE_ERROR,
})


class ShareStatus(str, Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"


# =============================================================================
# SCOPE
# =============================================================================

@dataclass(frozen=True)
class Scope:
    """
    What a validated token authorizes.

    Immutable: the allow-list is fixed at issuance and every downstream
    read or write is filtered through it.
    """
    token_id: str
    resource_type: ResourceType
    parent_resource_id: str
    allow_list: FrozenSet[str]
    expires_at: datetime

    def allows(self, sub_resource_id: str) -> bool:
        return sub_resource_id in self.allow_list


# =============================================================================
# SUBMISSIONS
# =============================================================================

@dataclass
class SubmissionUnit:
    """One proposed update: a full snapshot for one (sub-resource, fact kind)."""
    sub_resource_id: str
    fact_kind: str
    payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple:
        return (self.sub_resource_id, self.fact_kind)


@dataclass
class UnitOutcome:
    """Per-unit result reported back to the visitor."""
    sub_resource_id: str
    fact_kind: str
    status: UnitStatus
    version: Optional[int] = None
    reason: Optional[RejectionReason] = None
    message: Optional[str] = None

    @property
    def retryable(self) -> bool:
        return self.reason in RETRYABLE_REASONS

    @classmethod
    def committed(cls, unit: SubmissionUnit, version: int) -> "UnitOutcome":
        return cls(
            sub_resource_id=unit.sub_resource_id,
            fact_kind=unit.fact_kind,
            status=UnitStatus.COMMITTED,
            version=version,
        )

    @classmethod
    def rejected(
        cls,
        unit: SubmissionUnit,
        reason: RejectionReason,
        message: Optional[str] = None,
    ) -> "UnitOutcome":
        return cls(
            sub_resource_id=unit.sub_resource_id,
            fact_kind=unit.fact_kind,
            status=UnitStatus.REJECTED,
            reason=reason,
            message=message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sub_resource_id": self.sub_resource_id,
            "fact_kind": self.fact_kind,
            "status": self.status.value,
            "version": self.version,
            "reason": self.reason.value if self.reason else None,
            "message": self.message,
            "retryable": self.retryable,
        }


# =============================================================================
# PROJECTION
# =============================================================================

@dataclass
class FactState:
    """Current record for one fact kind, or an explicit NO_RECORD marker."""
    fact_kind: FactKind
    has_record: bool = False
    version: Optional[int] = None
    payload: Optional[Dict[str, Any]] = None
    recorded_at: Optional[datetime] = None

    @classmethod
    def no_record(cls, fact_kind: FactKind) -> "FactState":
        return cls(fact_kind=fact_kind)

    def to_dict(self) -> Dict[str, Any]:
        if not self.has_record:
            return {"fact_kind": self.fact_kind.value, "status": "NO_RECORD"}
        return {
            "fact_kind": self.fact_kind.value,
            "status": "CURRENT",
            "version": self.version,
            "payload": self.payload,
            "recorded_at": self.recorded_at.isoformat() if self.recorded_at else None,
        }


@dataclass
class SubResourceView:
    id: str
    name: Optional[str]
    facts: List[FactState] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "facts": [f.to_dict() for f in self.facts],
        }


@dataclass
class ProjectionView:
    """Everything the public form may show for one validated scope."""
    resource_type: ResourceType
    expires_at: datetime
    parent: Dict[str, Any]
    sub_resources: List[SubResourceView] = field(default_factory=list)
    submitted_sub_resources: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "resource_type": self.resource_type.value,
            "expires_at": self.expires_at.isoformat(),
            "parent": self.parent,
            "sub_resources": [s.to_dict() for s in self.sub_resources],
            "submitted_sub_resources": list(self.submitted_sub_resources),
        }


# =============================================================================
# PROGRESS
# =============================================================================

@dataclass
class ShareProgress:
    """Operator-facing completion summary for one token."""
    token_id: str
    resource_type: ResourceType
    parent_resource_id: str
    status: ShareStatus
    created_at: datetime
    expires_at: datetime
    last_used_at: Optional[datetime]
    total_sub_resources: int
    submitted_sub_resources: List[str] = field(default_factory=list)
    pending_sub_resources: List[str] = field(default_factory=list)

    @property
    def message(self) -> str:
        return (
            f"{len(self.submitted_sub_resources)} of {self.total_sub_resources} "
            f"employers assessed."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "resource_type": self.resource_type.value,
            "parent_resource_id": self.parent_resource_id,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
            "last_used_at": self.last_used_at.isoformat() if self.last_used_at else None,
            "total_sub_resources": self.total_sub_resources,
            "submitted_sub_resources": list(self.submitted_sub_resources),
            "pending_sub_resources": list(self.pending_sub_resources),
            "message": self.message,
        }

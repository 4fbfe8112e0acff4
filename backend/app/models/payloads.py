"""
Share Link Engine - Submission Payload Schemas

One explicit schema per fact kind. Public submissions arrive as arbitrary
JSON; every payload is validated against the schema for its fact kind before
it may become a VersionedRecord. Unknown fields are rejected, not dropped.
"""
from datetime import date
from typing import Annotated, Any, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .share import FactKind, ResourceType, RESOURCE_FACT_KINDS


class FactPayload(BaseModel):
    """Base for all fact payloads: strict shape, no extra keys."""
    model_config = ConfigDict(extra="forbid")

    notes: Optional[str] = Field(None, max_length=4000)


# =============================================================================
# AUDIT & COMPLIANCE
# =============================================================================

PAYMENT_STATUSES = ["correct", "incorrect", "uncertain"]
PAYMENT_TIMINGS = ["on_time", "late", "uncertain"]
WORKER_COUNT_STATUSES = ["correct", "incorrect"]


class _FundCheckPayload(FactPayload):
    """Shared shape of the CBUS and INCOLINK checks."""
    check_conducted: bool
    check_date: Optional[date] = None
    checked_by: List[str] = Field(default_factory=list)
    payment_status: Optional[str] = None
    payment_timing: Optional[str] = None
    worker_count_status: Optional[str] = None
    enforcement_flag: bool = False
    followup_required: bool = False

    @field_validator('payment_status')
    @classmethod
    def validate_payment_status(cls, v):
        if v is not None and v not in PAYMENT_STATUSES:
            raise ValueError(f'Invalid payment status. Must be one of: {", ".join(PAYMENT_STATUSES)}')
        return v

    @field_validator('payment_timing')
    @classmethod
    def validate_payment_timing(cls, v):
        if v is not None and v not in PAYMENT_TIMINGS:
            raise ValueError(f'Invalid payment timing. Must be one of: {", ".join(PAYMENT_TIMINGS)}')
        return v

    @field_validator('worker_count_status')
    @classmethod
    def validate_worker_count_status(cls, v):
        if v is not None and v not in WORKER_COUNT_STATUSES:
            raise ValueError(f'Invalid worker count status. Must be one of: {", ".join(WORKER_COUNT_STATUSES)}')
        return v

    @model_validator(mode='after')
    def check_details_require_conducted(self):
        if not self.check_conducted and (self.payment_status or self.payment_timing or self.worker_count_status):
            raise ValueError('Check details given but check_conducted is false')
        return self


class CbusCheckPayload(_FundCheckPayload):
    pass


class IncolinkCheckPayload(_FundCheckPayload):
    incolink_company_id: Optional[str] = Field(None, max_length=64)


# Four-point scale: 1 = good ... 4 = poor
Rating = Annotated[int, Field(ge=1, le=4)]


class UnionRespectCriteria(BaseModel):
    model_config = ConfigDict(extra="forbid")

    right_of_entry: Rating
    delegate_accommodation: Rating
    access_to_information: Rating
    access_to_inductions: Rating
    eba_status: Rating


class UnionRespectPayload(FactPayload):
    criteria: UnionRespectCriteria
    overall_score: Rating
    assessment_date: Optional[date] = None


class SafetyCriteria(BaseModel):
    model_config = ConfigDict(extra="forbid")

    safety_management_systems: Rating
    incident_reporting: Rating
    site_safety_culture: Rating
    risk_assessment_processes: Rating
    emergency_preparedness: Rating
    worker_safety_training: Rating


class SafetyMetrics(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lost_time_injuries: int = Field(0, ge=0)
    near_misses: int = Field(0, ge=0)
    safety_breaches: int = Field(0, ge=0)


class SafetyPayload(FactPayload):
    safety_criteria: SafetyCriteria
    safety_metrics: SafetyMetrics = Field(default_factory=SafetyMetrics)
    overall_safety_score: Rating
    assessment_date: Optional[date] = None


class SubcontractingCriteria(BaseModel):
    model_config = ConfigDict(extra="forbid")

    subcontractor_usage: Rating
    payment_terms: Rating
    treatment_of_subbies: Rating


class SubcontractorPayload(FactPayload):
    subcontracting_criteria: SubcontractingCriteria
    active_subcontractors: int = Field(0, ge=0)
    assessment_date: Optional[date] = None


# =============================================================================
# MAPPING SHEET
# =============================================================================

class ContractorRolePayload(FactPayload):
    role_code: str = Field(..., min_length=1, max_length=64)
    role_label: Optional[str] = Field(None, max_length=255)
    eba_status: Optional[bool] = None


class TradeAssignmentPayload(FactPayload):
    trade_type: str = Field(..., min_length=1, max_length=64)
    stage: Optional[str] = None
    estimated_workforce: Optional[int] = Field(None, ge=0)

    @field_validator('stage')
    @classmethod
    def validate_stage(cls, v):
        if v is not None:
            valid_stages = ['early_works', 'structure', 'finishing', 'other']
            if v not in valid_stages:
                raise ValueError(f'Invalid stage. Must be one of: {", ".join(valid_stages)}')
        return v


PAYLOAD_SCHEMAS: Dict[FactKind, Type[FactPayload]] = {
    FactKind.CBUS: CbusCheckPayload,
    FactKind.INCOLINK: IncolinkCheckPayload,
    FactKind.UNION_RESPECT: UnionRespectPayload,
    FactKind.SAFETY: SafetyPayload,
    FactKind.SUBCONTRACTOR: SubcontractorPayload,
    FactKind.CONTRACTOR_ROLE: ContractorRolePayload,
    FactKind.TRADE_ASSIGNMENT: TradeAssignmentPayload,
}


class PayloadRejected(Exception):
    """A submission payload does not match its fact kind's schema."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def parse_fact_kind(resource_type: ResourceType, raw_kind: Any) -> FactKind:
    """Resolve a submitted fact kind and check it belongs to the form's resource type."""
    try:
        kind = FactKind(raw_kind)
    except ValueError:
        raise PayloadRejected(f"Unknown fact kind: {raw_kind!r}")
    if kind not in RESOURCE_FACT_KINDS[resource_type]:
        raise PayloadRejected(f"Fact kind {kind.value} is not part of a {resource_type.value} form")
    return kind


def validate_payload(resource_type: ResourceType, raw_kind: Any, payload: Any) -> Dict[str, Any]:
    """
    Validate one submission payload.

    Returns the normalized JSON-ready snapshot to persist. Raises
    PayloadRejected with an inline message for the visitor otherwise.
    """
    kind = parse_fact_kind(resource_type, raw_kind)
    if not isinstance(payload, dict):
        raise PayloadRejected("Payload must be an object")
    schema = PAYLOAD_SCHEMAS[kind]
    try:
        model = schema.model_validate(payload)
    except ValidationError as e:
        raise PayloadRejected(_format_errors(e))
    return model.model_dump(mode="json")

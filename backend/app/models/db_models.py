"""
Share Link Engine - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, JSON, ForeignKey, Enum as SQLEnum,
    Boolean, Index, UniqueConstraint, text,
)
from ..database import Base
from .share import ResourceType, DurationClass, FactKind, utcnow


# =============================================================================
# OPERATORS
# =============================================================================

class OperatorDB(Base):
    """Authenticated staff account allowed to issue share links."""
    __tablename__ = "operators"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default="organiser")  # organiser | admin
    created_at = Column(DateTime, default=utcnow)


# =============================================================================
# REFERENCE DATA (read-only to the share core)
# =============================================================================

class ProjectDB(Base):
    """Parent resource a share link is scoped under."""
    __tablename__ = "projects"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)
    tier = Column(String(20), nullable=True)
    value = Column(Float, nullable=True)

    # Internal-only fields - never projected to the public form
    organiser_notes = Column(String(2000), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class EmployerDB(Base):
    """Sub-resource a share link can be scoped to."""
    __tablename__ = "employers"

    id = Column(String(36), primary_key=True)  # UUID
    name = Column(String(255), nullable=False)

    # Internal-only fields - never projected to the public form
    abn = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=utcnow)


# =============================================================================
# SHARE TOKENS
# =============================================================================

class AccessTokenDB(Base):
    """
    Issued share link.

    Written once at issuance. last_used_at is the only field touched
    afterwards; the token becomes unusable at expires_at but is never deleted.
    """
    __tablename__ = "share_access_tokens"

    id = Column(String(36), primary_key=True)  # UUID
    secret = Column(String(128), unique=True, nullable=False, index=True)

    resource_type = Column(SQLEnum(ResourceType), nullable=False)
    parent_resource_id = Column(String(36), nullable=False, index=True)
    scope_allow_list = Column(JSON, nullable=False)  # List[str] of sub-resource ids
    duration_class = Column(SQLEnum(DurationClass), nullable=False)

    created_by = Column(String(36), ForeignKey("operators.id", ondelete="SET NULL"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    expires_at = Column(DateTime, nullable=False)
    last_used_at = Column(DateTime, nullable=True)


# =============================================================================
# VERSIONED RECORDS
# =============================================================================

class VersionedRecordDB(Base):
    """
    Append-only history of facts about a sub-resource.

    One row per (sub_resource_id, fact_kind, version). is_current and
    superseded_at change once, together, when the next version lands; the
    store guarantees at most one current row per key.
    """
    __tablename__ = "versioned_records"
    __table_args__ = (
        UniqueConstraint("sub_resource_id", "fact_kind", "version", name="uq_versioned_records_version"),
        Index(
            "uq_versioned_records_current",
            "sub_resource_id",
            "fact_kind",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current"),
        ),
    )

    id = Column(String(36), primary_key=True)  # UUID
    sub_resource_id = Column(String(36), nullable=False, index=True)
    fact_kind = Column(SQLEnum(FactKind), nullable=False)
    version = Column(Integer, nullable=False)
    payload = Column(JSON, nullable=False)
    is_current = Column(Boolean, nullable=False, default=True)
    superseded_at = Column(DateTime, nullable=True)

    parent_resource_id = Column(String(36), nullable=True)
    created_via = Column(String(36), ForeignKey("share_access_tokens.id"), nullable=True, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

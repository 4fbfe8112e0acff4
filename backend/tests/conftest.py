"""
Shared fixtures for the share link test suite.

Every test gets its own file-backed SQLite database so that concurrent
sessions see real locking and real unique-index enforcement.
"""
import os
import sys
from datetime import datetime, timedelta

import pytest
from sqlalchemy.orm import sessionmaker

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# The module-level engine is never used by tests; keep it off PostgreSQL
os.environ["DATABASE_URL"] = "sqlite://"

from app.database import Base, build_engine
from app.models import db_models  # noqa: F401
from app.models.db_models import EmployerDB, OperatorDB, ProjectDB
from app.models.share import ResourceType
from app.services.share import TokenIssuer


NOW = datetime(2026, 3, 2, 9, 0, 0)

EMPLOYER_IDS = ["employer-a", "employer-b", "employer-c"]


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
def engine(tmp_path):
    """Fresh file-backed SQLite database per test."""
    engine = build_engine(f"sqlite:///{tmp_path / 'share_links.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock()


# =============================================================================
# REFERENCE DATA
# =============================================================================

@pytest.fixture
def operator(db):
    op = OperatorDB(
        id="operator-1",
        email="organiser@example.org",
        username="organiser",
        password_hash="not-a-real-hash",
        role="organiser",
    )
    db.add(op)
    db.commit()
    return op


@pytest.fixture
def project(db, employers):
    proj = ProjectDB(
        id="project-1",
        name="Metro Tunnel Stage 2",
        tier="tier_1",
        value=125000000.0,
        organiser_notes="Internal: delegate meeting scheduled",
    )
    db.add(proj)
    db.commit()
    return proj


@pytest.fixture
def employers(db):
    rows = [
        EmployerDB(id=EMPLOYER_IDS[0], name="Acme Formwork", abn="11111111111"),
        EmployerDB(id=EMPLOYER_IDS[1], name="Delta Steel", abn="22222222222"),
        EmployerDB(id=EMPLOYER_IDS[2], name="Harbour Cranes", abn="33333333333"),
    ]
    db.add_all(rows)
    db.commit()
    return rows


@pytest.fixture
def issuer(db, clock):
    return TokenIssuer(db, clock=clock)


@pytest.fixture
def audit_token(issuer, project, operator):
    """AUDIT_COMPLIANCE link scoped to employers A and B only."""
    return issuer.issue(
        resource_type=ResourceType.AUDIT_COMPLIANCE,
        parent_resource_id=project.id,
        scope_allow_list=EMPLOYER_IDS[:2],
        duration_class="48h",
        created_by=operator.id,
    )


# =============================================================================
# PAYLOADS
# =============================================================================

def cbus_payload(**overrides):
    payload = {
        "check_conducted": True,
        "check_date": "2026-03-01",
        "checked_by": ["delegate"],
        "payment_status": "correct",
        "payment_timing": "on_time",
        "worker_count_status": "correct",
    }
    payload.update(overrides)
    return payload


def safety_payload(score=2):
    return {
        "safety_criteria": {
            "safety_management_systems": score,
            "incident_reporting": score,
            "site_safety_culture": score,
            "risk_assessment_processes": score,
            "emergency_preparedness": score,
            "worker_safety_training": score,
        },
        "safety_metrics": {"lost_time_injuries": 0, "near_misses": 3, "safety_breaches": 1},
        "overall_safety_score": score,
    }

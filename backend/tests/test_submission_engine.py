"""
Test Suite: Versioned Submission Engine

Covers:
1. Scope confinement (out-of-scope units never persisted)
2. Version monotonicity and a single current row per fact
3. Per-kind payload validation
4. Mid-session expiry
5. Conflict retry exhaustion, backoff and persistence failures
6. Link reuse until expiry
"""
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError
from tenacity import wait_none
from tenacity.wait import wait_base

from app.models.db_models import VersionedRecordDB
from app.models.share import (
    FactKind, RejectionReason, ResourceType, SubmissionUnit, TokenErrorKind, UnitStatus,
)
from app.services.share import (
    AuditTrail, PersistenceError, TokenError, TokenValidator, VersionedSubmissionEngine,
)
from app.services.share import submission_engine
from app.services.share.audit_trail import record_to_dict
from app.services.share.submission_engine import StaleCurrentVersion, to_units

from conftest import cbus_payload, safety_payload


@pytest.fixture
def scope(db, clock, audit_token):
    return TokenValidator(db, clock=clock).validate(audit_token.secret, ResourceType.AUDIT_COMPLIANCE)


@pytest.fixture
def engine_service(db, clock):
    return VersionedSubmissionEngine(db, clock=clock)


def _records(db, sub_resource_id, kind):
    return db.query(VersionedRecordDB).filter(
        VersionedRecordDB.sub_resource_id == sub_resource_id,
        VersionedRecordDB.fact_kind == kind,
    ).order_by(VersionedRecordDB.version).all()


# =============================================================================
# SCOPE CONFINEMENT
# =============================================================================

class TestScopeConfinement:

    def test_out_of_scope_unit_rejected(self, db, scope, engine_service):
        outcomes = engine_service.submit(scope, [
            {"sub_resource_id": "employer-a", "fact_kind": "CBUS", "payload": cbus_payload()},
            {"sub_resource_id": "employer-c", "fact_kind": "CBUS", "payload": cbus_payload()},
        ])

        assert outcomes[0].status == UnitStatus.COMMITTED
        assert outcomes[0].version == 1
        assert outcomes[1].status == UnitStatus.REJECTED
        assert outcomes[1].reason == RejectionReason.RESOURCE_NOT_IN_SCOPE
        assert not outcomes[1].retryable
        assert _records(db, "employer-c", FactKind.CBUS) == []

    def test_outcomes_in_submission_order(self, scope, engine_service):
        outcomes = engine_service.submit(scope, [
            SubmissionUnit("employer-b", "SAFETY", safety_payload()),
            SubmissionUnit("employer-z", "SAFETY", safety_payload()),
            SubmissionUnit("employer-a", "CBUS", cbus_payload()),
        ])

        assert [(o.sub_resource_id, o.status) for o in outcomes] == [
            ("employer-b", UnitStatus.COMMITTED),
            ("employer-z", UnitStatus.REJECTED),
            ("employer-a", UnitStatus.COMMITTED),
        ]

    def test_missing_sub_resource_id_not_in_scope(self, db, scope, engine_service):
        units = to_units([{"sub_resource_id": None, "fact_kind": "CBUS", "payload": cbus_payload()}])
        assert units[0].sub_resource_id == ""

        outcome = engine_service.submit(scope, units)[0]

        assert outcome.reason == RejectionReason.RESOURCE_NOT_IN_SCOPE
        assert db.query(VersionedRecordDB).count() == 0


# =============================================================================
# VERSIONING
# =============================================================================

class TestVersioning:

    def test_sequential_submissions_are_monotonic(self, db, scope, engine_service, clock):
        versions = []
        for i in range(5):
            clock.advance(minutes=1)
            outcome = engine_service.submit(scope, [
                SubmissionUnit("employer-a", "CBUS", cbus_payload(notes=f"round {i}")),
            ])[0]
            versions.append(outcome.version)

        assert versions == [1, 2, 3, 4, 5]
        records = _records(db, "employer-a", FactKind.CBUS)
        assert [r.version for r in records] == [1, 2, 3, 4, 5]
        assert [r.is_current for r in records] == [False, False, False, False, True]
        assert records[-1].payload["notes"] == "round 4"

    def test_prior_versions_unchanged(self, db, scope, engine_service):
        engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload(notes="first"))])
        engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload(notes="second"))])

        first = _records(db, "employer-a", FactKind.CBUS)[0]
        assert first.payload["notes"] == "first"
        assert first.created_via == scope.token_id

    def test_replaced_version_stamped_superseded(self, db, scope, engine_service, clock):
        engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload(notes="first"))])
        clock.advance(minutes=5)
        engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload(notes="second"))])

        db.expire_all()
        first, second = _records(db, "employer-a", FactKind.CBUS)
        assert first.superseded_at == clock()
        assert first.superseded_at == second.created_at
        assert second.superseded_at is None
        assert record_to_dict(first)["superseded_at"] == clock().isoformat()
        assert record_to_dict(second)["superseded_at"] is None

    def test_fact_kinds_version_independently(self, db, scope, engine_service):
        engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())])
        outcomes = engine_service.submit(scope, [
            SubmissionUnit("employer-a", "CBUS", cbus_payload()),
            SubmissionUnit("employer-a", "SAFETY", safety_payload()),
        ])

        assert [o.version for o in outcomes] == [2, 1]

    def test_existing_history_continues(self, db, scope, engine_service, clock):
        db.add(VersionedRecordDB(
            id="legacy-1",
            sub_resource_id="employer-b",
            fact_kind=FactKind.SAFETY,
            version=3,
            payload={"notes": "entered by organiser"},
            is_current=True,
            created_at=clock(),
        ))
        db.commit()

        outcome = engine_service.submit(scope, [SubmissionUnit("employer-b", "SAFETY", safety_payload())])[0]

        assert outcome.version == 4
        assert AuditTrail(db).current("employer-b", FactKind.SAFETY).version == 4


# =============================================================================
# PAYLOAD VALIDATION
# =============================================================================

class TestPayloadValidation:

    @pytest.mark.parametrize("fact_kind, payload", [
        ("CBUS", {"check_conducted": "maybe"}),
        ("CBUS", {"check_conducted": False, "payment_status": "correct"}),
        ("CBUS", cbus_payload(payment_status="sometimes")),
        ("CBUS", cbus_payload(unexpected_field=True)),
        ("SAFETY", safety_payload(score=5)),
        ("UNION_RESPECT", {"overall_score": 2}),
        ("SUBCONTRACTOR", None),
        ("SUBCONTRACTOR", ["not", "an", "object"]),
        ("CONTRACTOR_ROLE", {"role_code": "head_contractor"}),
        ("NOT_A_KIND", {}),
    ])
    def test_invalid_payload_rejected(self, db, scope, engine_service, fact_kind, payload):
        outcome = engine_service.submit(scope, [
            {"sub_resource_id": "employer-a", "fact_kind": fact_kind, "payload": payload},
        ])[0]

        assert outcome.status == UnitStatus.REJECTED
        assert outcome.reason == RejectionReason.VALIDATION_ERROR
        assert outcome.message
        assert db.query(VersionedRecordDB).count() == 0

    def test_valid_payload_normalized(self, db, scope, engine_service):
        engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())])

        stored = _records(db, "employer-a", FactKind.CBUS)[0].payload
        assert stored["check_date"] == "2026-03-01"
        assert stored["enforcement_flag"] is False
        assert stored["notes"] is None

    def test_invalid_unit_does_not_block_batch(self, scope, engine_service):
        outcomes = engine_service.submit(scope, [
            SubmissionUnit("employer-a", "CBUS", {"check_conducted": "maybe"}),
            SubmissionUnit("employer-b", "CBUS", cbus_payload()),
        ])

        assert [o.status for o in outcomes] == [UnitStatus.REJECTED, UnitStatus.COMMITTED]


# =============================================================================
# TOKEN RE-VALIDATION
# =============================================================================

class TestRevalidation:

    def test_expired_mid_session_rejects_batch(self, db, scope, engine_service, clock):
        clock.now = scope.expires_at

        with pytest.raises(TokenError) as exc:
            engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())])

        assert exc.value.kind == TokenErrorKind.EXPIRED
        assert db.query(VersionedRecordDB).count() == 0

    def test_store_failure_on_revalidation(self, scope, clock):
        mock_db = MagicMock()
        mock_db.query.side_effect = OperationalError("SELECT", {}, Exception("connection refused"))

        with pytest.raises(PersistenceError):
            VersionedSubmissionEngine(mock_db, clock=clock).submit(scope, [])

        mock_db.rollback.assert_called_once()


# =============================================================================
# CONFLICTS AND FAILURES
# =============================================================================

class TestConflictHandling:

    def test_conflict_retried_then_committed(self, db, scope, clock, monkeypatch):
        advance = VersionedSubmissionEngine._advance
        calls = {"n": 0}

        def conflicting_once(self, *args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 1:
                raise StaleCurrentVersion()
            return advance(self, *args, **kwargs)

        monkeypatch.setattr(VersionedSubmissionEngine, "_advance", conflicting_once)

        outcome = VersionedSubmissionEngine(db, clock=clock, backoff=wait_none()).submit(
            scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())]
        )[0]

        assert outcome.status == UnitStatus.COMMITTED
        assert outcome.version == 1
        assert calls["n"] == 2

    def test_persistent_conflict_exhausts_retries(self, db, scope, clock, monkeypatch):
        calls = {"n": 0}

        def always_conflict(self, *args, **kwargs):
            calls["n"] += 1
            raise StaleCurrentVersion()

        monkeypatch.setattr(VersionedSubmissionEngine, "_advance", always_conflict)

        outcome = VersionedSubmissionEngine(db, clock=clock, max_attempts=3, backoff=wait_none()).submit(
            scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())]
        )[0]

        assert calls["n"] == 3
        assert outcome.status == UnitStatus.REJECTED
        assert outcome.reason == RejectionReason.CONCURRENCY_EXHAUSTED
        assert outcome.retryable
        assert db.query(VersionedRecordDB).count() == 0


    def test_backoff_between_conflict_retries(self, db, scope, clock, monkeypatch):
        class RecordingWait(wait_base):
            def __init__(self):
                self.attempts = []

            def __call__(self, retry_state):
                self.attempts.append(retry_state.attempt_number)
                return 0

        def always_conflict(self, *args, **kwargs):
            raise StaleCurrentVersion()

        monkeypatch.setattr(VersionedSubmissionEngine, "_advance", always_conflict)
        backoff = RecordingWait()

        outcome = VersionedSubmissionEngine(db, clock=clock, max_attempts=4, backoff=backoff).submit(
            scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())]
        )[0]

        assert backoff.attempts == [1, 2, 3]
        assert outcome.reason == RejectionReason.CONCURRENCY_EXHAUSTED

    def test_default_backoff_is_jittered_and_bounded(self, db, clock):
        backoff = VersionedSubmissionEngine(db, clock=clock).backoff
        initial = submission_engine.BACKOFF_INITIAL

        first_waits = [backoff(MagicMock(attempt_number=1)) for _ in range(20)]
        late_wait = backoff(MagicMock(attempt_number=30))

        assert all(initial <= w <= 2 * initial for w in first_waits)
        assert late_wait == submission_engine.BACKOFF_MAX

    def test_persistence_error_isolated_to_unit(self, db, scope, clock, monkeypatch):
        advance = VersionedSubmissionEngine._advance

        def failing_for_b(self, scope, sub_resource_id, kind, payload):
            if sub_resource_id == "employer-b":
                raise OperationalError("INSERT", {}, Exception("disk full"))
            return advance(self, scope, sub_resource_id, kind, payload)

        monkeypatch.setattr(VersionedSubmissionEngine, "_advance", failing_for_b)

        outcomes = VersionedSubmissionEngine(db, clock=clock).submit(scope, [
            SubmissionUnit("employer-b", "CBUS", cbus_payload()),
            SubmissionUnit("employer-a", "CBUS", cbus_payload()),
        ])

        assert outcomes[0].reason == RejectionReason.PERSISTENCE_ERROR
        assert outcomes[0].retryable
        assert outcomes[1].status == UnitStatus.COMMITTED
        assert _records(db, "employer-b", FactKind.CBUS) == []

    def test_outcome_to_dict(self, scope, engine_service):
        outcome = engine_service.submit(scope, [SubmissionUnit("employer-c", "CBUS", cbus_payload())])[0]

        assert outcome.to_dict() == {
            "sub_resource_id": "employer-c",
            "fact_kind": "CBUS",
            "status": "REJECTED",
            "version": None,
            "reason": "RESOURCE_NOT_IN_SCOPE",
            "message": "Resource not in scope",
            "retryable": False,
        }


# =============================================================================
# LINK REUSE UNTIL EXPIRY
# =============================================================================

class TestReuseUntilExpiry:

    def test_link_reusable_until_expiry(self, db, clock, audit_token):
        """Each visit re-validates and submits; the same link keeps working until expires_at."""
        engine_service = VersionedSubmissionEngine(db, clock=clock)

        versions = []
        for i in range(3):
            scope = TokenValidator(db, clock=clock).validate(audit_token.secret, ResourceType.AUDIT_COMPLIANCE)
            outcome = engine_service.submit(scope, [
                SubmissionUnit("employer-a", "CBUS", cbus_payload(notes=f"visit {i}")),
            ])[0]
            assert outcome.status == UnitStatus.COMMITTED
            versions.append(outcome.version)
            clock.advance(hours=1)

        assert versions == [1, 2, 3]

        clock.now = audit_token.expires_at

        with pytest.raises(TokenError) as exc:
            TokenValidator(db, clock=clock).validate(audit_token.secret, ResourceType.AUDIT_COMPLIANCE)
        assert exc.value.kind == TokenErrorKind.EXPIRED

        with pytest.raises(TokenError) as exc:
            engine_service.submit(scope, [SubmissionUnit("employer-a", "CBUS", cbus_payload())])
        assert exc.value.kind == TokenErrorKind.EXPIRED

        assert len(_records(db, "employer-a", FactKind.CBUS)) == 3

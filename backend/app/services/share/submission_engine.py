"""
Versioned Submission Engine

Commits public submissions as new versions of (sub_resource_id, fact_kind)
facts. History is append-only: each commit inserts the next version as
current and flips the previous current row, in one transaction per unit.

Concurrency policy: optimistic, bounded retry.
- The previous current row is flipped with a compare-and-swap UPDATE
  (WHERE id = :id AND is_current); a rowcount other than 1 means another
  transaction moved currency first.
- The store enforces UNIQUE(sub_resource_id, fact_kind, version) and at most
  one is_current row per key, so two racing first versions cannot both land.
- On conflict the unit rolls back, waits a short jittered backoff and retries
  from a fresh read. A retried loser commits as a later version and becomes
  current (last committed wins).
- After MAX_ATTEMPTS conflicts the unit is rejected CONCURRENCY_EXHAUSTED and
  the visitor's client is told to resubmit it.

The flipped row gets superseded_at in the same transaction.

Units are independent: each has its own transaction, and one unit's failure
never rolls back another.
"""
import logging
import os
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Optional, Union
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from ...models.db_models import VersionedRecordDB
from ...models.payloads import PayloadRejected, validate_payload
from ...models.share import (
    FactKind, RejectionReason, Scope, SubmissionUnit, TokenErrorKind, UnitOutcome, utcnow,
)
from .errors import PersistenceError, TokenError
from .token_store import TokenStore
from .token_validator import is_expired

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = int(os.getenv("SHARE_SUBMIT_MAX_ATTEMPTS", "3"))

# Seconds
BACKOFF_INITIAL = float(os.getenv("SHARE_SUBMIT_BACKOFF_INITIAL", "0.02"))
BACKOFF_MAX = float(os.getenv("SHARE_SUBMIT_BACKOFF_MAX", "0.5"))


class StaleCurrentVersion(Exception):
    """The row read as current was no longer current at flip time."""


# Both mean another transaction moved the key first
CONFLICTS = (IntegrityError, StaleCurrentVersion)


def default_backoff() -> wait_base:
    return wait_exponential_jitter(initial=BACKOFF_INITIAL, max=BACKOFF_MAX, jitter=BACKOFF_INITIAL)


def to_units(submissions: Iterable[Union[SubmissionUnit, Dict[str, Any]]]) -> List[SubmissionUnit]:
    units = []
    for item in submissions:
        if isinstance(item, SubmissionUnit):
            units.append(item)
        else:
            sub_resource_id = item.get("sub_resource_id")
            units.append(SubmissionUnit(
                sub_resource_id="" if sub_resource_id is None else str(sub_resource_id),
                fact_kind=item.get("fact_kind"),
                payload=item.get("payload"),
            ))
    return units


class VersionedSubmissionEngine:

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = MAX_ATTEMPTS,
        backoff: Optional[wait_base] = None,
    ):
        self.db = db
        self.clock = clock
        self.max_attempts = max_attempts
        self.backoff = backoff if backoff is not None else default_backoff()

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def submit(
        self,
        scope: Scope,
        submissions: Iterable[Union[SubmissionUnit, Dict[str, Any]]],
    ) -> List[UnitOutcome]:
        """
        Commit a batch of proposed updates under a validated scope.

        Raises TokenError if the token expired since the form was loaded,
        PersistenceError if the token store cannot be read. Every other
        failure is reported per unit, in submission order.
        """
        self._revalidate(scope)

        outcomes = []
        for unit in to_units(submissions):
            outcomes.append(self._process_unit(scope, unit))

        committed = sum(1 for o in outcomes if o.version is not None)
        logger.info(
            f"Share token {scope.token_id}: {committed}/{len(outcomes)} units committed"
        )
        return outcomes

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _revalidate(self, scope: Scope) -> None:
        """Re-read the token; a link that expired mid-session takes no new writes."""
        try:
            token = TokenStore(self.db).get(scope.token_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Token re-validation failed for {scope.token_id}: {e}")
            raise PersistenceError("Token store unavailable") from e

        if token is None:
            raise TokenError(TokenErrorKind.NOT_FOUND)
        if is_expired(token, self.clock()):
            raise TokenError(TokenErrorKind.EXPIRED)

    def _process_unit(self, scope: Scope, unit: SubmissionUnit) -> UnitOutcome:
        if not scope.allows(unit.sub_resource_id):
            logger.warning(
                f"Share token {scope.token_id}: rejected out-of-scope sub-resource {unit.sub_resource_id}"
            )
            return UnitOutcome.rejected(unit, RejectionReason.RESOURCE_NOT_IN_SCOPE, "Resource not in scope")

        try:
            payload = validate_payload(scope.resource_type, unit.fact_kind, unit.payload)
        except PayloadRejected as e:
            return UnitOutcome.rejected(unit, RejectionReason.VALIDATION_ERROR, e.message)

        return self._commit_with_retry(scope, unit, FactKind(unit.fact_kind), payload)

    def _commit_with_retry(
        self,
        scope: Scope,
        unit: SubmissionUnit,
        kind: FactKind,
        payload: Dict[str, Any],
    ) -> UnitOutcome:
        def log_conflict(retry_state: RetryCallState) -> None:
            logger.warning(
                f"Version conflict on {unit.sub_resource_id}/{kind.value} "
                f"(attempt {retry_state.attempt_number}/{self.max_attempts})"
            )

        retrying = Retrying(
            retry=retry_if_exception_type(CONFLICTS),
            stop=stop_after_attempt(self.max_attempts),
            wait=self.backoff,
            before_sleep=log_conflict,
            reraise=True,
        )

        try:
            version = retrying(self._commit_once, scope, unit.sub_resource_id, kind, payload)
        except CONFLICTS:
            logger.warning(
                f"Gave up on {unit.sub_resource_id}/{kind.value} after {self.max_attempts} conflicts"
            )
            return UnitOutcome.rejected(
                unit,
                RejectionReason.CONCURRENCY_EXHAUSTED,
                "Another submission was saved at the same time, please retry",
            )
        except SQLAlchemyError as e:
            logger.error(f"Persistence failure on {unit.sub_resource_id}/{kind.value}: {e}")
            return UnitOutcome.rejected(
                unit, RejectionReason.PERSISTENCE_ERROR, "Could not save, please retry"
            )

        logger.info(f"Committed {unit.sub_resource_id}/{kind.value} v{version} via {scope.token_id}")
        return UnitOutcome.committed(unit, version)

    def _commit_once(
        self,
        scope: Scope,
        sub_resource_id: str,
        kind: FactKind,
        payload: Dict[str, Any],
    ) -> int:
        """One attempt in its own transaction; rolled back on any failure."""
        try:
            version = self._advance(scope, sub_resource_id, kind, payload)
            self.db.commit()
        except (SQLAlchemyError, StaleCurrentVersion):
            self.db.rollback()
            raise
        return version

    def _current(self, sub_resource_id: str, kind: FactKind) -> Optional[VersionedRecordDB]:
        return self.db.query(VersionedRecordDB).filter(
            VersionedRecordDB.sub_resource_id == sub_resource_id,
            VersionedRecordDB.fact_kind == kind,
            VersionedRecordDB.is_current.is_(True),
        ).first()

    def _advance(
        self,
        scope: Scope,
        sub_resource_id: str,
        kind: FactKind,
        payload: Dict[str, Any],
    ) -> int:
        """
        Stage the transition NoRecord|Current(v) -> Current(v+1).

        Flushes but does not commit. Raises StaleCurrentVersion or
        IntegrityError when another transaction got there first.
        """
        now = self.clock()
        current = self._current(sub_resource_id, kind)
        next_version = (current.version if current else 0) + 1

        if current is not None:
            flipped = self.db.query(VersionedRecordDB).filter(
                VersionedRecordDB.id == current.id,
                VersionedRecordDB.is_current.is_(True),
            ).update({"is_current": False, "superseded_at": now}, synchronize_session=False)
            if flipped != 1:
                raise StaleCurrentVersion()

        self.db.add(VersionedRecordDB(
            id=str(uuid4()),
            sub_resource_id=sub_resource_id,
            fact_kind=kind,
            version=next_version,
            payload=payload,
            is_current=True,
            parent_resource_id=scope.parent_resource_id,
            created_via=scope.token_id,
            created_at=now,
        ))
        self.db.flush()
        return next_version

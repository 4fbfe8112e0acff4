"""
Audit Trail Read Model

Operator-facing queries over the append-only version history. No logic of
its own beyond ordering; reads the same store the submission engine writes.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...models.db_models import VersionedRecordDB
from ...models.share import FactKind


def record_to_dict(record: VersionedRecordDB) -> Dict[str, Any]:
    return {
        "id": record.id,
        "sub_resource_id": record.sub_resource_id,
        "fact_kind": FactKind(record.fact_kind).value,
        "version": record.version,
        "payload": record.payload,
        "is_current": record.is_current,
        "parent_resource_id": record.parent_resource_id,
        "created_via": record.created_via,
        "created_at": record.created_at.isoformat() if record.created_at else None,
        "superseded_at": record.superseded_at.isoformat() if record.superseded_at else None,
    }


class AuditTrail:

    def __init__(self, db: Session):
        self.db = db

    def history(self, sub_resource_id: str, fact_kind: FactKind) -> List[VersionedRecordDB]:
        """Every version of one fact, oldest first."""
        return self.db.query(VersionedRecordDB).filter(
            VersionedRecordDB.sub_resource_id == sub_resource_id,
            VersionedRecordDB.fact_kind == FactKind(fact_kind),
        ).order_by(VersionedRecordDB.version.asc()).all()

    def current(self, sub_resource_id: str, fact_kind: FactKind) -> Optional[VersionedRecordDB]:
        return self.db.query(VersionedRecordDB).filter(
            VersionedRecordDB.sub_resource_id == sub_resource_id,
            VersionedRecordDB.fact_kind == FactKind(fact_kind),
            VersionedRecordDB.is_current.is_(True),
        ).first()

    def submissions_via(self, token_id: str) -> List[VersionedRecordDB]:
        """Rows created through one share link, in commit order."""
        return self.db.query(VersionedRecordDB).filter(
            VersionedRecordDB.created_via == token_id
        ).order_by(VersionedRecordDB.created_at.asc(), VersionedRecordDB.version.asc()).all()

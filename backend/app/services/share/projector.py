"""
Scoped Read Projector

Builds the public form view for a validated scope. This is the
confidentiality boundary: every query is filtered by scope.allow_list, so
sub-resources outside it are never loaded, let alone returned.
"""
from typing import Dict, List, Tuple

from sqlalchemy.orm import Session

from ...models.db_models import EmployerDB, ProjectDB, VersionedRecordDB
from ...models.share import (
    FactKind, FactState, ProjectionView, RESOURCE_FACT_KINDS, Scope, SubResourceView,
)
from .errors import ParentResourceNotFoundError


# Project fields safe to show an unauthenticated visitor
PUBLIC_PARENT_FIELDS = ("id", "name", "tier", "value")


class ScopedReadProjector:

    def __init__(self, db: Session):
        self.db = db

    def project(self, scope: Scope) -> ProjectionView:
        project = self.db.query(ProjectDB).filter(ProjectDB.id == scope.parent_resource_id).first()
        if project is None:
            raise ParentResourceNotFoundError(scope.parent_resource_id)

        allowed = sorted(scope.allow_list)
        fact_kinds = RESOURCE_FACT_KINDS[scope.resource_type]

        names: Dict[str, str] = {
            e.id: e.name
            for e in self.db.query(EmployerDB).filter(EmployerDB.id.in_(allowed)).all()
        }

        current: Dict[Tuple[str, FactKind], VersionedRecordDB] = {
            (r.sub_resource_id, r.fact_kind): r
            for r in self.db.query(VersionedRecordDB).filter(
                VersionedRecordDB.sub_resource_id.in_(allowed),
                VersionedRecordDB.fact_kind.in_(fact_kinds),
                VersionedRecordDB.is_current.is_(True),
            ).all()
        }

        sub_resources: List[SubResourceView] = []
        for sid in allowed:
            facts = []
            for kind in fact_kinds:
                record = current.get((sid, kind))
                if record is None:
                    facts.append(FactState.no_record(kind))
                else:
                    facts.append(FactState(
                        fact_kind=kind,
                        has_record=True,
                        version=record.version,
                        payload=record.payload,
                        recorded_at=record.created_at,
                    ))
            sub_resources.append(SubResourceView(id=sid, name=names.get(sid), facts=facts))

        return ProjectionView(
            resource_type=scope.resource_type,
            expires_at=scope.expires_at,
            parent={field: getattr(project, field) for field in PUBLIC_PARENT_FIELDS},
            sub_resources=sub_resources,
            submitted_sub_resources=submitted_via(self.db, scope),
        )


def submitted_via(db: Session, scope: Scope) -> List[str]:
    """Allow-listed sub-resources that already have a record created through this token."""
    rows = db.query(VersionedRecordDB.sub_resource_id).filter(
        VersionedRecordDB.created_via == scope.token_id,
        VersionedRecordDB.sub_resource_id.in_(sorted(scope.allow_list)),
    ).distinct().all()
    return sorted(row[0] for row in rows)

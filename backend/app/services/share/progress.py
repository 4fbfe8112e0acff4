"""
Share Progress Read Model

Completion tracking for issued links: how many of the allow-listed
sub-resources have been submitted through each token. Derived from the
version history at read time; tokens are never updated to track it.
"""
from datetime import datetime
from typing import Callable, List

from sqlalchemy.orm import Session

from ...models.db_models import AccessTokenDB
from ...models.share import ResourceType, ShareProgress, ShareStatus, utcnow
from .projector import submitted_via
from .token_store import TokenStore
from .token_validator import is_expired, scope_from_token


class ShareProgressService:

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def summarize(self, token: AccessTokenDB) -> ShareProgress:
        allow_list = list(token.scope_allow_list or [])
        submitted = submitted_via(self.db, scope_from_token(token))
        submitted_set = set(submitted)

        return ShareProgress(
            token_id=token.id,
            resource_type=ResourceType(token.resource_type),
            parent_resource_id=token.parent_resource_id,
            status=ShareStatus.EXPIRED if is_expired(token, self.clock()) else ShareStatus.ACTIVE,
            created_at=token.created_at,
            expires_at=token.expires_at,
            last_used_at=token.last_used_at,
            total_sub_resources=len(allow_list),
            submitted_sub_resources=submitted,
            pending_sub_resources=[sid for sid in allow_list if sid not in submitted_set],
        )

    def list_issued(self, operator_id: str) -> List[ShareProgress]:
        """Links issued by one operator, newest first."""
        return [self.summarize(t) for t in TokenStore(self.db).list_by_creator(operator_id)]

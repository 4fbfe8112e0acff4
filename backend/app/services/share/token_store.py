"""
Token Store

Durable record of issued share links. All authority decisions are
recomputed from these rows on every call; nothing is cached in process.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import AccessTokenDB

logger = logging.getLogger(__name__)


class SecretCollision(Exception):
    """The generated secret is already held by another token."""


class TokenStore:
    """Persistence for AccessTokenDB rows."""

    def __init__(self, db: Session):
        self.db = db

    def add(self, token: AccessTokenDB) -> AccessTokenDB:
        """
        Persist a new token.

        Raises SecretCollision if the unique secret index rejects the row;
        the session is rolled back so the caller can retry with a new secret.
        """
        self.db.add(token)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise SecretCollision()
        self.db.refresh(token)
        return token

    def get(self, token_id: str) -> Optional[AccessTokenDB]:
        return self.db.query(AccessTokenDB).filter(AccessTokenDB.id == token_id).first()

    def get_by_secret(self, secret: str) -> Optional[AccessTokenDB]:
        if not secret:
            return None
        return self.db.query(AccessTokenDB).filter(AccessTokenDB.secret == secret).first()

    def secret_exists(self, secret: str) -> bool:
        return self.db.query(AccessTokenDB.id).filter(AccessTokenDB.secret == secret).first() is not None

    def list_by_creator(self, operator_id: str) -> List[AccessTokenDB]:
        """Tokens issued by an operator, newest first."""
        return self.db.query(AccessTokenDB).filter(
            AccessTokenDB.created_by == operator_id
        ).order_by(AccessTokenDB.created_at.desc()).all()

    def touch_last_used(self, token_id: str, used_at: datetime) -> bool:
        """Record the latest successful validation. Observability only."""
        updated = self.db.query(AccessTokenDB).filter(
            AccessTokenDB.id == token_id
        ).update({"last_used_at": used_at}, synchronize_session=False)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        return updated == 1

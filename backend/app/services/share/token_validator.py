"""
Token Validator

Resolves a bearer secret to an immutable Scope or a typed TokenError.
Read-only with respect to versioned state; safe to call concurrently and
any number of times. A token is reusable until it expires.
"""
import logging
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ...models.db_models import AccessTokenDB
from ...models.share import ResourceType, Scope, TokenErrorKind, utcnow
from .errors import PersistenceError, TokenError
from .token_store import TokenStore

logger = logging.getLogger(__name__)


def is_expired(token: AccessTokenDB, now: datetime) -> bool:
    """Expiry boundary is exclusive: a token is dead at expires_at."""
    return now >= token.expires_at


def scope_from_token(token: AccessTokenDB) -> Scope:
    return Scope(
        token_id=token.id,
        resource_type=ResourceType(token.resource_type),
        parent_resource_id=token.parent_resource_id,
        allow_list=frozenset(token.scope_allow_list or []),
        expires_at=token.expires_at,
    )


class TokenValidator:

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.store = TokenStore(db)
        self.clock = clock

    def validate(self, secret: str, expected_resource_type: ResourceType) -> Scope:
        """
        Check a secret against the store.

        Order: NOT_FOUND, then EXPIRED, then TYPE_MISMATCH. Raises
        PersistenceError if the store cannot be read.
        """
        try:
            token = self.store.get_by_secret(secret)
        except SQLAlchemyError as e:
            logger.error(f"Token lookup failed: {e}")
            raise PersistenceError("Token store unavailable") from e

        if token is None:
            raise TokenError(TokenErrorKind.NOT_FOUND)

        if is_expired(token, self.clock()):
            raise TokenError(TokenErrorKind.EXPIRED)

        if ResourceType(token.resource_type) != ResourceType(expected_resource_type):
            logger.warning(
                f"Share token {token.id} is {token.resource_type.value}, "
                f"presented for {ResourceType(expected_resource_type).value}"
            )
            raise TokenError(TokenErrorKind.TYPE_MISMATCH)

        return scope_from_token(token)


def record_use(session_factory: sessionmaker, token_id: str, used_at: Optional[datetime] = None) -> None:
    """
    Best-effort last_used_at update, run off the request path.

    Opens its own session; failures are logged and never reach the visitor.
    """
    db = session_factory()
    try:
        TokenStore(db).touch_last_used(token_id, used_at or utcnow())
    except SQLAlchemyError as e:
        logger.warning(f"Could not record use of share token {token_id}: {e}")
    finally:
        db.close()

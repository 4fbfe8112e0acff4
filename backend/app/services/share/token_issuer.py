"""
Token Issuer

Creates share links bound to a resource type, a parent resource and an
explicit allow-list of sub-resources.
"""
import logging
import os
import secrets
from datetime import datetime
from typing import Callable, Iterable, List, Optional, Union
from uuid import uuid4

from sqlalchemy.orm import Session

from ...models.db_models import AccessTokenDB
from ...models.share import DurationClass, ResourceType, utcnow
from .errors import EmptyScopeError, TokenGenerationError
from .expiry import parse_duration_class, resolve_expiry
from .token_store import SecretCollision, TokenStore

logger = logging.getLogger(__name__)

SECRET_MAX_ATTEMPTS = int(os.getenv("SHARE_SECRET_MAX_ATTEMPTS", "5"))

# 48 random bytes -> 64 URL-safe characters
SECRET_BYTES = 48


def generate_secret() -> str:
    """High-entropy bearer string from a CSPRNG."""
    return secrets.token_urlsafe(SECRET_BYTES)


def normalize_allow_list(sub_resource_ids: Optional[Iterable[str]]) -> List[str]:
    """Strip blanks and duplicates, keeping the operator's selection order."""
    seen = set()
    cleaned = []
    for raw in sub_resource_ids or []:
        if raw is None:
            continue
        sid = str(raw).strip()
        if sid and sid not in seen:
            seen.add(sid)
            cleaned.append(sid)
    return cleaned


class TokenIssuer:
    """Issues AccessTokenDB rows. The only side effect is the insert."""

    def __init__(
        self,
        db: Session,
        secret_factory: Callable[[], str] = generate_secret,
        clock: Callable[[], datetime] = utcnow,
        max_attempts: int = SECRET_MAX_ATTEMPTS,
    ):
        self.store = TokenStore(db)
        self.secret_factory = secret_factory
        self.clock = clock
        self.max_attempts = max_attempts

    def issue(
        self,
        resource_type: ResourceType,
        parent_resource_id: str,
        scope_allow_list: Iterable[str],
        duration_class: Union[DurationClass, str],
        created_by: Optional[str] = None,
    ) -> AccessTokenDB:
        """
        Issue a new share link.

        Raises:
            EmptyScopeError: allow-list has no usable ids
            InvalidDurationError: duration_class is not an enumerated class
            TokenGenerationError: no unique secret within the attempt budget
        """
        allow_list = normalize_allow_list(scope_allow_list)
        if not allow_list:
            raise EmptyScopeError()

        duration = parse_duration_class(duration_class)
        resource_type = ResourceType(resource_type)
        issued_at = self.clock()
        expires_at = resolve_expiry(duration, issued_at)

        for attempt in range(1, self.max_attempts + 1):
            secret = self.secret_factory()
            if self.store.secret_exists(secret):
                logger.warning(f"Secret collision before insert (attempt {attempt})")
                continue

            token = AccessTokenDB(
                id=str(uuid4()),
                secret=secret,
                resource_type=resource_type,
                parent_resource_id=parent_resource_id,
                scope_allow_list=allow_list,
                duration_class=duration,
                created_by=created_by,
                created_at=issued_at,
                expires_at=expires_at,
            )
            try:
                self.store.add(token)
            except SecretCollision:
                logger.warning(f"Secret collision on insert (attempt {attempt})")
                continue

            logger.info(
                f"Issued share token {token.id}: {resource_type.value} "
                f"parent={parent_resource_id} scope={len(allow_list)} expires={expires_at.isoformat()}"
            )
            return token

        raise TokenGenerationError(f"No unique secret after {self.max_attempts} attempts")

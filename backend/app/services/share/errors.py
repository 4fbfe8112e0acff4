"""
Share Link Errors

Request-scoped failures raised by the share services. None of these are
fatal to the process; routers translate them into HTTP responses.
Per-unit submission failures are reported as RejectionReason values, not
raised.
"""
from typing import Optional

from ...models.share import TokenErrorKind


class ShareError(Exception):
    """Base class for share link failures."""


# Issuance-time: operator error, surfaced synchronously, not retried

class EmptyScopeError(ShareError):
    def __init__(self):
        super().__init__("At least one sub-resource must be selected")


class InvalidDurationError(ShareError):
    def __init__(self, duration_class):
        super().__init__(f"Invalid duration class: {duration_class!r}")
        self.duration_class = duration_class


class TokenGenerationError(ShareError):
    """Could not produce a unique secret within the attempt budget."""


# Validation-time: terminal for the public visitor

TOKEN_ERROR_MESSAGES = {
    TokenErrorKind.NOT_FOUND: "This link is not valid.",
    TokenErrorKind.EXPIRED: "This link has expired.",
    TokenErrorKind.TYPE_MISMATCH: "This link cannot be used for this form.",
}


class TokenError(ShareError):
    def __init__(self, kind: TokenErrorKind, detail: Optional[str] = None):
        super().__init__(detail or TOKEN_ERROR_MESSAGES[kind])
        self.kind = kind

    @property
    def user_message(self) -> str:
        return TOKEN_ERROR_MESSAGES[self.kind]


class ParentResourceNotFoundError(ShareError):
    def __init__(self, parent_resource_id: str):
        super().__init__(f"Parent resource not found: {parent_resource_id}")
        self.parent_resource_id = parent_resource_id


# Store unavailable: generic retryable failure

class PersistenceError(ShareError):
    pass

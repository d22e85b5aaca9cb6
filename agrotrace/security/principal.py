"""Authenticated principal as seen by the audit core. Issued upstream; no FastAPI."""

from dataclasses import dataclass
from typing import Optional

ANONYMOUS_NAME = "anonymousUser"


@dataclass(frozen=True)
class Principal:
    """Caller identity propagated by the auth gateway for the duration of one request."""

    user_id: Optional[int]
    email: Optional[str] = None
    role: Optional[str] = None
    tenant_id: Optional[int] = None
    tenant_name: Optional[str] = None

    @property
    def is_anonymous(self) -> bool:
        return self.user_id is None or self.email == ANONYMOUS_NAME

    @property
    def is_authenticated(self) -> bool:
        return not self.is_anonymous


ANONYMOUS_PRINCIPAL = Principal(user_id=None, email=ANONYMOUS_NAME)

"""Resolve the acting user from the request-scoped security context."""

import logging
from typing import Optional

from agrotrace.core.context import client_ip_ctx, principal_ctx, user_agent_ctx
from agrotrace.domain.models.audit_event import AuditActor

logger = logging.getLogger(__name__)


def resolve_current_actor() -> Optional[AuditActor]:
    """
    Return the authenticated actor, or None when there is no principal, the
    principal is not authenticated, or it is the anonymous principal.
    """
    try:
        principal = principal_ctx.get()
        if principal is None or not principal.is_authenticated:
            return None
        return AuditActor(
            actor_id=principal.user_id,
            email=principal.email,
            tenant_id=principal.tenant_id,
            tenant_name=principal.tenant_name,
            client_ip=client_ip_ctx.get(),
            user_agent=user_agent_ctx.get(),
        )
    except Exception as e:
        logger.warning("audit_actor_lookup_failed", extra={"error": str(e)})
        return None

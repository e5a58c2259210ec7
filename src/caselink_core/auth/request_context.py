"""Actor extraction from API Gateway headers.

The API Gateway validates staff credentials and adds X-User-* headers after
stripping any client-provided ones. Services trust these headers without
further validation. Submitters carry no credentials: they are identified by
the case access token instead, see Actor.submitter().
"""

import json
import logging
from typing import List, Optional

from fastapi import HTTPException, Request, status

from caselink_core.auth.identity import Actor, ActorRole

logger = logging.getLogger(__name__)

# Gateway role names mapped onto engine roles; the first match wins
_ROLE_ALIASES = {
    "supervisor": ActorRole.SUPERVISOR,
    "manager": ActorRole.SUPERVISOR,
    "owner": ActorRole.OWNER,
    "agent": ActorRole.OWNER,
}


def _parse_roles(roles_header: Optional[str]) -> List[str]:
    if not roles_header:
        return []
    try:
        roles = json.loads(roles_header)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse X-User-Roles header: {roles_header}")
        return []
    if not isinstance(roles, list):
        logger.warning(f"X-User-Roles header is not a JSON array: {roles_header}")
        return []
    return [str(role).lower() for role in roles]


def resolve_role(roles: List[str]) -> Optional[ActorRole]:
    """Pick the strongest engine role present in the gateway roles."""
    for alias in ("supervisor", "manager", "owner", "agent"):
        if alias in roles:
            return _ROLE_ALIASES[alias]
    return None


def get_actor(request: Request) -> Actor:
    """Extract the staff actor from API Gateway headers.

    Args:
        request: FastAPI request object

    Returns:
        Actor with role OWNER or SUPERVISOR

    Raises:
        HTTPException: 401 if X-User-ID is missing, 403 if no staff role is present
    """
    user_id = request.headers.get("X-User-ID")
    if not user_id:
        logger.error("Missing X-User-ID header in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-User-ID header required (should be added by API Gateway)",
        )

    roles = _parse_roles(request.headers.get("X-User-Roles"))
    role = resolve_role(roles)
    if role is None:
        logger.warning(f"User {user_id} has no staff role: {roles}")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Staff role required",
        )

    return Actor(
        actor_id=user_id,
        role=role,
        ip=request.client.host if request.client else None,
        correlation_id=request.headers.get("X-Correlation-ID"),
    )


def get_submitter(request: Request) -> Actor:
    """Submitter actor for token-addressed requests (records the client address)."""
    return Actor.submitter(ip=request.client.host if request.client else None)

"""Actor identity for the case lifecycle engine.

Staff actors are extracted from API Gateway headers; submitters are
identified by the case access token.
"""

from caselink_core.auth.identity import (
    Actor,
    ActorRole,
    SYSTEM_ACTOR,
    OwnerDirectory,
    InMemoryOwnerDirectory,
)
from caselink_core.auth.request_context import get_actor, get_submitter

__all__ = [
    "Actor",
    "ActorRole",
    "SYSTEM_ACTOR",
    "OwnerDirectory",
    "InMemoryOwnerDirectory",
    "get_actor",
    "get_submitter",
]

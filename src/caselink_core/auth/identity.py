"""Actors and owner lookup.

The engine does not interpret credentials. An identity provider (the API
gateway, see request_context) resolves a request to an Actor; the engine only
uses the role and an opaque actor_id for ownership checks and audit attribution.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

from caselink_core.config import SUBMITTER_ACTOR_ID, SYSTEM_ACTOR_ID

logger = logging.getLogger(__name__)


class ActorRole(str, Enum):
    OWNER = "owner"            # agent responsible for cases
    SUBMITTER = "submitter"    # customer reaching a case through its link
    SUPERVISOR = "supervisor"  # manager with oversight of every owner
    SYSTEM = "system"          # sweepers


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation.

    Attributes:
        actor_id: Staff user id, or a fixed id for submitters and the system
        role: Role resolved by the identity provider
        ip: Client address, recorded on audit events
        correlation_id: Optional correlation ID for request tracing
    """

    actor_id: str
    role: ActorRole
    ip: Optional[str] = None
    correlation_id: Optional[str] = None

    @classmethod
    def owner(cls, actor_id: str, ip: Optional[str] = None) -> "Actor":
        return cls(actor_id=actor_id, role=ActorRole.OWNER, ip=ip)

    @classmethod
    def supervisor(cls, actor_id: str, ip: Optional[str] = None) -> "Actor":
        return cls(actor_id=actor_id, role=ActorRole.SUPERVISOR, ip=ip)

    @classmethod
    def submitter(cls, ip: Optional[str] = None) -> "Actor":
        return cls(actor_id=SUBMITTER_ACTOR_ID, role=ActorRole.SUBMITTER, ip=ip)

    @property
    def is_staff(self) -> bool:
        return self.role in (ActorRole.OWNER, ActorRole.SUPERVISOR)


SYSTEM_ACTOR = Actor(actor_id=SYSTEM_ACTOR_ID, role=ActorRole.SYSTEM)


class OwnerDirectory(ABC):
    """Answers whether an id refers to a staff member who can own cases."""

    @abstractmethod
    async def is_valid_owner(self, owner_id: str) -> bool:
        pass


class InMemoryOwnerDirectory(OwnerDirectory):
    """Owner directory backed by a dict of owner_id -> display name."""

    def __init__(self, owners: Optional[Iterable[str]] = None, names: Optional[Dict[str, str]] = None):
        self._owners: Dict[str, str] = dict(names or {})
        for owner_id in owners or []:
            self._owners.setdefault(owner_id, owner_id)

    def register(self, owner_id: str, name: Optional[str] = None) -> None:
        self._owners[owner_id] = name or owner_id
        logger.info(f"Registered owner: {owner_id}")

    def remove(self, owner_id: str) -> None:
        self._owners.pop(owner_id, None)

    def name_of(self, owner_id: str) -> Optional[str]:
        return self._owners.get(owner_id)

    async def is_valid_owner(self, owner_id: str) -> bool:
        return owner_id in self._owners

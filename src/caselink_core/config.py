"""Workflow constants and deployment settings.

The escalation thresholds and the required document set are fixed for the
engine and are not runtime-configurable. Deployment settings (Redis key prefix,
sweep interval, collaborator URLs) are read from the environment.
"""

import logging
import os
from datetime import timedelta
from enum import Enum
from typing import Optional, Tuple

logger = logging.getLogger(__name__)


class DocumentKind(str, Enum):
    """Kinds of documents a submitter has to provide."""

    ID = "ID"
    LICENCE = "LICENCE"
    PROOF_OF_ADDRESS = "PROOF_OF_ADDRESS"
    BANK_STATEMENT = "BANK_STATEMENT"


# ============================================================
# Workflow constants
# ============================================================

REQUIRED_DOCUMENT_KINDS: Tuple[DocumentKind, ...] = (
    DocumentKind.ID,
    DocumentKind.LICENCE,
    DocumentKind.PROOF_OF_ADDRESS,
    DocumentKind.BANK_STATEMENT,
)

# Measured from created_at
FIRST_REMINDER_HOURS = 24

# Measured from the owner's last acknowledgement, not from creation
SECOND_REMINDER_HOURS = 48

# Measured from created_at; never reset
SLA_EXPIRY_HOURS = 144

FIRST_REMINDER_AFTER = timedelta(hours=FIRST_REMINDER_HOURS)
SECOND_REMINDER_AFTER = timedelta(hours=SECOND_REMINDER_HOURS)
SLA_EXPIRY_AFTER = timedelta(hours=SLA_EXPIRY_HOURS)

SYSTEM_ACTOR_ID = "system"
SUBMITTER_ACTOR_ID = "submitter"
SUBMITTER_LINK_PREFIX = "/customer"


# ============================================================
# Deployment settings
# ============================================================

DEFAULT_SWEEP_INTERVAL_SECONDS = 3600
DEFAULT_REDIS_KEY_PREFIX = "caselink"


def get_sweep_interval_seconds() -> float:
    """Interval between sweeper ticks (CASELINK_SWEEP_INTERVAL_SECONDS)."""
    raw = os.getenv("CASELINK_SWEEP_INTERVAL_SECONDS")
    if not raw:
        return float(DEFAULT_SWEEP_INTERVAL_SECONDS)
    try:
        interval = float(raw)
    except ValueError:
        logger.warning(
            f"Invalid CASELINK_SWEEP_INTERVAL_SECONDS '{raw}', "
            f"defaulting to {DEFAULT_SWEEP_INTERVAL_SECONDS}"
        )
        return float(DEFAULT_SWEEP_INTERVAL_SECONDS)
    if interval <= 0:
        logger.warning(
            f"CASELINK_SWEEP_INTERVAL_SECONDS must be positive, got {interval}; "
            f"defaulting to {DEFAULT_SWEEP_INTERVAL_SECONDS}"
        )
        return float(DEFAULT_SWEEP_INTERVAL_SECONDS)
    return interval


def get_redis_key_prefix() -> str:
    """Namespace for every key the Redis store writes (CASELINK_REDIS_KEY_PREFIX)."""
    return os.getenv("CASELINK_REDIS_KEY_PREFIX", DEFAULT_REDIS_KEY_PREFIX)


def get_blob_service_url() -> Optional[str]:
    return os.getenv("CASELINK_BLOB_SERVICE_URL")


def get_audit_service_url() -> Optional[str]:
    return os.getenv("CASELINK_AUDIT_SERVICE_URL")

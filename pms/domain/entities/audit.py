"""Entidad AuditEntry - bitácora de eventos de una reservación."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pms.domain.value_objects.actor import Actor


class AuditKind(str, Enum):
    """Tipos de entrada de auditoría."""

    TRANSITION_REJECTED = "transition_rejected"
    HISTORY_ARCHIVED = "history_archived"
    WORKFLOW_RULE_EXECUTED = "workflow_rule_executed"
    AMENDMENT_RECEIVED = "amendment_received"
    AMENDMENT_RESOLVED = "amendment_resolved"
    CHANNEL_SYNC = "channel_sync"


@dataclass
class AuditEntry:
    """Registro inmutable de algo que le ocurrió a una reservación."""

    reservation_id: str
    kind: AuditKind
    timestamp: datetime
    actor: Actor = field(default_factory=Actor)
    details: dict[str, Any] = field(default_factory=dict)

"""shadowsync - keep a mirror collection in step with a source collection

Each published source record of a configured kind gets exactly one mirror
record of the paired kind, with the same name and slug. Changes are
propagated by event handlers as they happen, and a reconciliation pass
repairs whatever drift accumulates while the handlers are not listening.
"""

from .errors import (
    ShadowSyncError,
    ConfigurationError,
    ValidationError,
    NotFoundError,
    RepositoryError,
)
from .storage import (
    SourceRecord,
    MirrorRecord,
    Relationship,
    Association,
    SourceRepository,
    MirrorRepository,
)
from .event_bus import EventBus, get_event_bus, reset_event_bus
from .events import SYNC_ORIGIN, SourceUpsertedEvent, SourceDeletingEvent, MirrorCreatedEvent
from .associations import AssociationStore, LinkCheck, SOURCE_META_KEY, MIRROR_META_KEY
from .record_store import RecordStore
from .handlers import HandlerOutcome, SourceUpsertHandler, SourceDeleteHandler, MirrorCreateHandler
from .reconcile import (
    CancellationToken,
    ReconcileAction,
    ReconcileStatus,
    ReconciliationEngine,
    ReconciliationPlan,
    ReconciliationReport,
)
from .registry import RelationshipRegistry
from .config import ShadowSyncConfig, load_config

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Errors
    "ShadowSyncError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "RepositoryError",
    # Records
    "SourceRecord",
    "MirrorRecord",
    "Relationship",
    "Association",
    "SourceRepository",
    "MirrorRepository",
    "RecordStore",
    # Events
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    "SYNC_ORIGIN",
    "SourceUpsertedEvent",
    "SourceDeletingEvent",
    "MirrorCreatedEvent",
    # Sync
    "AssociationStore",
    "LinkCheck",
    "SOURCE_META_KEY",
    "MIRROR_META_KEY",
    "HandlerOutcome",
    "SourceUpsertHandler",
    "SourceDeleteHandler",
    "MirrorCreateHandler",
    "CancellationToken",
    "ReconcileAction",
    "ReconcileStatus",
    "ReconciliationEngine",
    "ReconciliationPlan",
    "ReconciliationReport",
    "RelationshipRegistry",
    # Configuration
    "ShadowSyncConfig",
    "load_config",
]

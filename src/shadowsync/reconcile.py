"""
Reconciliation Engine - batch repair of drift for one relationship.

Scans the entire source and mirror collections (not just recent changes),
diffs them against the association metadata, and repairs:

- missing mirrors           (published source, no mirror)      -> create
- drifted mirrors           (linked, name/slug differ)         -> update
- orphaned mirrors          (no published source claims them)  -> delete
- missing link metadata     (pair matched by back-link/slug)   -> backfill

A pass only relies on the two repositories and the association store, so it
is safe after bulk imports or outages. Every repair is individually
idempotent: re-running on synced collections plans nothing.

Usage:
    engine = ReconciliationEngine(Relationship("staff", "offices"),
                                  store.sources, store.mirrors, store.associations)

    report = engine.run(dry_run=True)     # counts only, no writes
    report = engine.run()                 # apply
    print(report.status, report.touched)
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterator, List, Optional, Set, Tuple

from .errors import NotFoundError, RepositoryError, ShadowSyncError, ValidationError
from .events import SYNC_ORIGIN
from .storage.models import Association, MirrorRecord, Relationship, SourceRecord, in_sync

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 500


class ReconcileAction(str, Enum):
    """Repair categories, in the order they are applied (see ReconciliationEngine.run)."""
    CREATE = "create"
    DELETE = "delete"
    UPDATE = "update"
    MISSING_MIRROR_META = "missing mirror meta"
    MISSING_SOURCE_META = "missing source meta"


class ReconcileStatus(str, Enum):
    """How a pass ended."""
    IN_SYNC = "in_sync"
    DRY_RUN = "dry_run"
    APPLIED = "applied"
    CANCELLED = "cancelled"
    FAILED = "failed"


class CancellationToken:
    """Lets an operator stop a pass between pages. Thread-safe."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class ReconciliationCancelled(Exception):
    """Internal signal: the token was cancelled mid-pass."""
    pass


@dataclass
class ActionFailure:
    """A repair that raised."""
    action: Optional[ReconcileAction]  # None when the scan itself failed
    record_id: Optional[str]
    error: ShadowSyncError

    def __str__(self) -> str:
        step = self.action.value if self.action else "scan"
        return f"{step} failed for record {self.record_id}: {self.error}"


@dataclass
class ReconciliationPlan:
    """Drift found by a scan, partitioned by repair category."""
    to_create: List[SourceRecord] = field(default_factory=list)
    to_update: List[Tuple[SourceRecord, MirrorRecord]] = field(default_factory=list)
    to_delete: List[MirrorRecord] = field(default_factory=list)
    missing_mirror_meta: List[Association] = field(default_factory=list)
    missing_source_meta: List[Association] = field(default_factory=list)
    sources_scanned: int = 0
    mirrors_scanned: int = 0

    def counts(self) -> Dict[ReconcileAction, int]:
        return {
            ReconcileAction.CREATE: len(self.to_create),
            ReconcileAction.DELETE: len(self.to_delete),
            ReconcileAction.UPDATE: len(self.to_update),
            ReconcileAction.MISSING_MIRROR_META: len(self.missing_mirror_meta),
            ReconcileAction.MISSING_SOURCE_META: len(self.missing_source_meta),
        }

    @property
    def total(self) -> int:
        return sum(self.counts().values())

    @property
    def is_empty(self) -> bool:
        return self.total == 0


@dataclass
class ReconciliationReport:
    """Outcome of one reconciliation pass."""
    relationship: Relationship
    dry_run: bool
    planned: Dict[ReconcileAction, int] = field(default_factory=dict)
    applied: Dict[ReconcileAction, int] = field(default_factory=lambda: {action: 0 for action in ReconcileAction})
    status: ReconcileStatus = ReconcileStatus.IN_SYNC
    failure: Optional[ActionFailure] = None
    failures: List[ActionFailure] = field(default_factory=list)
    sources_scanned: int = 0
    mirrors_scanned: int = 0

    @property
    def touched(self) -> int:
        """Records created, updated, deleted or re-linked."""
        return sum(self.applied.values())

    @property
    def planned_total(self) -> int:
        return sum(self.planned.values())

    @property
    def ok(self) -> bool:
        return self.status not in (ReconcileStatus.FAILED, ReconcileStatus.CANCELLED)

    def rows(self) -> List[Dict[str, object]]:
        """(action, count) rows for tabular output; planned counts for dry runs."""
        counts = self.planned if self.dry_run else self.applied
        return [{"action": action.value, "count": counts.get(action, 0)} for action in ReconcileAction]

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary for serialization."""
        return {
            "source_kind": self.relationship.source_kind,
            "mirror_kind": self.relationship.mirror_kind,
            "dry_run": self.dry_run,
            "status": self.status.value,
            "planned": {action.value: count for action, count in self.planned.items()},
            "applied": {action.value: count for action, count in self.applied.items()},
            "touched": self.touched,
            "failure": str(self.failure) if self.failure else None,
            "failures": [str(failure) for failure in self.failures],
        }


ActionCallback = Callable[[ReconcileAction, object], None]
PlanCallback = Callable[[ReconciliationPlan], None]


class ReconciliationEngine:
    """
    Converges one relationship's collections to the "in sync" invariant.

    Args:
        relationship: The (source kind, mirror kind) pair
        sources: SourceRepository
        mirrors: MirrorRepository
        associations: AssociationStore
        page_size: Records fetched per page while scanning
        fail_fast: Stop at the first failed repair (default). When False,
                   ValidationErrors are collected and the pass continues;
                   RepositoryErrors always stop the pass.
    """

    def __init__(self,
                 relationship: Relationship,
                 sources,
                 mirrors,
                 associations,
                 page_size: int = DEFAULT_PAGE_SIZE,
                 fail_fast: bool = True):
        if page_size < 1:
            raise ValueError("page_size must be positive")
        self.relationship = relationship
        self.sources = sources
        self.mirrors = mirrors
        self.associations = associations
        self.page_size = page_size
        self.fail_fast = fail_fast

    # Scanning

    def _pages(self, repository, kind: str, cancel: Optional[CancellationToken]) -> Iterator[list]:
        page = 1
        while True:
            if cancel is not None and cancel.cancelled:
                raise ReconciliationCancelled()
            records = repository.list_published(kind, page, self.page_size)
            if not records:
                return
            yield records
            if len(records) < self.page_size:
                return
            page += 1

    def plan(self, cancel: Optional[CancellationToken] = None) -> ReconciliationPlan:
        """
        Scan both collections and partition the drift. Read-only.

        Mirrors are scanned first to index them by slug and by back-link;
        each published source then claims at most one mirror. All forward
        links are claimed first, then mirrors linking back to a source, then
        same-slug mirrors not owned by another live source. Unclaimed mirrors
        are orphans.
        """
        rel = self.relationship
        plan = ReconciliationPlan()

        mirrors: Dict[str, MirrorRecord] = {}
        mirrors_by_slug: Dict[str, MirrorRecord] = {}
        back_links: Dict[str, str] = {}
        for page in self._pages(self.mirrors, rel.mirror_kind, cancel):
            for mirror in page:
                mirrors[mirror.id] = mirror
                mirrors_by_slug[mirror.slug] = mirror
                source_id = self.associations.get_source_id(mirror.id)
                if source_id:
                    back_links[mirror.id] = source_id
        plan.mirrors_scanned = len(mirrors)

        # Mirror IDs claimed by reverse link, keyed by source ID
        reverse: Dict[str, str] = {}
        for mirror_id, source_id in back_links.items():
            reverse.setdefault(source_id, mirror_id)

        sources: List[SourceRecord] = []
        forwards: Dict[str, Optional[str]] = {}
        for page in self._pages(self.sources, rel.source_kind, cancel):
            for source in page:
                if source.id in forwards:
                    continue
                sources.append(source)
                forwards[source.id] = self.associations.get_mirror_id(source.id)
        plan.sources_scanned = len(sources)

        # Forward links win over reverse links, and both over slug matches,
        # whatever order the sources were listed in.
        claims: Dict[str, MirrorRecord] = {}
        claimed: Set[str] = set()
        for links in (forwards, reverse):
            for source in sources:
                mirror = mirrors.get(links.get(source.id))
                if source.id not in claims and mirror is not None and mirror.id not in claimed:
                    claims[source.id] = mirror
                    claimed.add(mirror.id)
        for source in sources:
            if source.id not in claims:
                mirror = self._slug_match(source, mirrors_by_slug, back_links, claimed)
                if mirror is not None:
                    claims[source.id] = mirror
                    claimed.add(mirror.id)

        for source in sources:
            mirror = claims.get(source.id)
            if mirror is None:
                plan.to_create.append(source)
                continue

            if forwards[source.id] != mirror.id:
                plan.missing_source_meta.append(Association(source.id, mirror.id))
            if back_links.get(mirror.id) != source.id:
                plan.missing_mirror_meta.append(Association(source.id, mirror.id))
            if not in_sync(source, mirror):
                plan.to_update.append((source, mirror))

        plan.to_delete = [mirror for mirror_id, mirror in mirrors.items() if mirror_id not in claimed]

        logger.debug(
            f"Planned {rel}: " + ", ".join(f"{a.value}={n}" for a, n in plan.counts().items())
        )
        return plan

    def _slug_match(self, source, mirrors_by_slug, back_links, claimed) -> Optional[MirrorRecord]:
        """A same-slug mirror that is unclaimed and not owned by another live source."""
        candidate = mirrors_by_slug.get(source.slug)
        if candidate is None or candidate.id in claimed:
            return None
        owner = back_links.get(candidate.id)
        if owner and owner != source.id and self._is_live_source(owner):
            return None
        return candidate

    def _is_live_source(self, source_id: str) -> bool:
        source = self.sources.get(source_id)
        return (
            source is not None
            and source.kind == self.relationship.source_kind
            and source.is_published
        )

    # Applying

    def run(self,
            dry_run: bool = False,
            cancel: Optional[CancellationToken] = None,
            on_action: Optional[ActionCallback] = None,
            on_plan: Optional[PlanCallback] = None) -> ReconciliationReport:
        """
        Run one reconciliation pass.

        Repairs are applied as creates, orphan deletes, updates, then the
        creates whose slug was held by a deleted or renamed mirror, and
        finally the metadata backfills.

        Args:
            dry_run: Report planned counts without writing anything
            cancel: Optional token checked between pages
            on_action: Called with (action, record) after each applied repair
            on_plan: Called with the plan before any repair is applied

        Returns:
            ReconciliationReport; status FAILED carries the failed record
        """
        report = ReconciliationReport(relationship=self.relationship, dry_run=dry_run)

        try:
            plan = self.plan(cancel)
        except ReconciliationCancelled:
            logger.warning(f"Reconciliation of {self.relationship} cancelled during scan")
            report.status = ReconcileStatus.CANCELLED
            return report
        except RepositoryError as e:
            logger.error(f"Reconciliation of {self.relationship} aborted during scan: {e}")
            report.status = ReconcileStatus.FAILED
            report.failure = ActionFailure(action=None, record_id=e.record_id, error=e)
            return report

        report.planned = plan.counts()
        report.sources_scanned = plan.sources_scanned
        report.mirrors_scanned = plan.mirrors_scanned

        if dry_run:
            report.status = ReconcileStatus.DRY_RUN
            return report

        if plan.is_empty:
            logger.info(f"{self.relationship} is in sync, no action needed")
            report.status = ReconcileStatus.IN_SYNC
            return report

        logger.info(f"Reconciling {self.relationship}: {plan.total} repairs over {plan.sources_scanned} sources")
        if on_plan is not None:
            on_plan(plan)

        # A create whose slug is still held by a mirror being deleted or
        # renamed in this pass has to wait until that slug is released.
        held = {mirror.slug for mirror in plan.to_delete}
        held.update(mirror.slug for _, mirror in plan.to_update)
        creates = [source for source in plan.to_create if source.slug not in held]
        deferred = [source for source in plan.to_create if source.slug in held]

        steps = [
            (ReconcileAction.CREATE, creates, self._create_mirror),
            (ReconcileAction.DELETE, plan.to_delete, self._delete_mirror),
            (ReconcileAction.UPDATE, plan.to_update, self._update_mirror),
            (ReconcileAction.CREATE, deferred, self._create_mirror),
            (ReconcileAction.MISSING_MIRROR_META, plan.missing_mirror_meta, self._backfill),
            (ReconcileAction.MISSING_SOURCE_META, plan.missing_source_meta, self._backfill),
        ]

        done = 0
        for action, items, apply in steps:
            for item in items:
                if done % self.page_size == 0 and cancel is not None and cancel.cancelled:
                    logger.warning(f"Reconciliation of {self.relationship} cancelled after {report.touched} repairs")
                    report.status = ReconcileStatus.CANCELLED
                    return report
                done += 1

                try:
                    record = apply(item)
                except NotFoundError as e:
                    logger.warning(f"Skipping {action.value} for vanished record {e.record_id}")
                    continue
                except (ValidationError, RepositoryError) as e:
                    failure = ActionFailure(action=action, record_id=e.record_id or _item_id(item), error=e)
                    if self.fail_fast or isinstance(e, RepositoryError):
                        logger.error(f"Reconciliation of {self.relationship} aborted: {failure}")
                        report.status = ReconcileStatus.FAILED
                        report.failure = failure
                        return report
                    logger.warning(f"Reconciliation of {self.relationship}: {failure}")
                    report.failures.append(failure)
                    continue

                report.applied[action] += 1
                if on_action is not None:
                    on_action(action, record)

        report.status = ReconcileStatus.FAILED if report.failures else ReconcileStatus.APPLIED
        if report.failures:
            report.failure = report.failures[0]
        logger.info(f"Reconciled {self.relationship}: {report.touched} records touched")
        return report

    def _create_mirror(self, source: SourceRecord) -> MirrorRecord:
        mirror = self.mirrors.create(
            {"kind": self.relationship.mirror_kind, "name": source.title, "slug": source.slug},
            origin=SYNC_ORIGIN,
        )
        self.associations.set_link(source.id, mirror.id)
        return mirror

    def _update_mirror(self, pair: Tuple[SourceRecord, MirrorRecord]) -> MirrorRecord:
        source, mirror = pair
        return self.mirrors.update(mirror.id, {"name": source.title, "slug": source.slug}, origin=SYNC_ORIGIN)

    def _delete_mirror(self, mirror: MirrorRecord) -> MirrorRecord:
        self.mirrors.delete(mirror.id, origin=SYNC_ORIGIN)
        self.associations.clear_link(mirror_id=mirror.id)
        return mirror

    def _backfill(self, link: Association) -> Association:
        return self.associations.set_link(link.source_id, link.mirror_id)


def _item_id(item) -> Optional[str]:
    if isinstance(item, tuple):
        item = item[1]
    if isinstance(item, Association):
        return item.source_id
    return getattr(item, "id", None)


__all__ = [
    "ReconcileAction",
    "ReconcileStatus",
    "CancellationToken",
    "ReconciliationCancelled",
    "ActionFailure",
    "ReconciliationPlan",
    "ReconciliationReport",
    "ReconciliationEngine",
    "DEFAULT_PAGE_SIZE",
]

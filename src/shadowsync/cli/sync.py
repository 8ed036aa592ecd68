"""Sync commands for shadowsync CLI: sync, check, relationships."""
import signal
import threading
from contextlib import contextmanager

import click

from ..errors import ConfigurationError, ShadowSyncError
from ..event_bus import EventBus
from ..reconcile import CancellationToken, ReconcileAction, ReconcileStatus

# Local CLI imports
from .common import (
    echo_normal,
    echo_quiet,
    echo_verbose,
    fail,
    require_config,
    VERBOSITY_VERBOSE,
)


@click.group()
def sync_group():
    """Synchronization commands."""
    pass


@contextmanager
def _cancel_on_interrupt(token: CancellationToken):
    """Turn the first Ctrl-C into a cancellation request for the running pass."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame):
        click.echo(click.style("Cancelling after the current page...", fg="yellow"))
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _describe(action: ReconcileAction, record) -> str:
    if action == ReconcileAction.CREATE:
        return f"Created mirror: {record.name}"
    if action == ReconcileAction.DELETE:
        return f"Deleting orphan mirror: {record.name}"
    if action == ReconcileAction.UPDATE:
        return f"Updated mirror: {record.name}"
    return f"Linked source {record.source_id} <-> mirror {record.mirror_id}"


@sync_group.command('sync')
@click.option('--cpt', 'source_kind', required=True, help='Source kind to mirror')
@click.option('--tax', 'mirror_kind', required=True, help='Mirror kind kept in sync')
@click.option('--dry-run', is_flag=True, default=False,
              help='Show how many records would be repaired, without writing')
@click.option('--verbose', 'per_record', is_flag=True, default=False,
              help='Print every record created, updated, deleted or linked')
@click.option('--page-size', type=click.IntRange(min=1), default=None,
              help='Records fetched per page (default: from config or 500)')
@click.option('--keep-going', is_flag=True, default=False,
              help='Continue past records that fail validation')
@click.pass_context
def sync(ctx, source_kind: str, mirror_kind: str, dry_run: bool, per_record: bool,
         page_size: int, keep_going: bool) -> None:
    """Reconcile a source kind with its mirror kind.

    Creates missing mirrors, repairs drifted ones, deletes orphans and
    backfills link metadata. Ctrl-C stops the pass between pages.

    \b
    Examples:
        shadowsync sync --cpt=staff --tax=offices --dry-run
        shadowsync sync --cpt=staff --tax=offices --verbose
    """
    verbosity = ctx.obj.get('verbosity', 1)
    if per_record:
        verbosity = VERBOSITY_VERBOSE
    config = require_config(ctx)

    try:
        store = config.open_store(event_bus=EventBus())
    except ShadowSyncError as e:
        fail(str(e))

    with store:
        try:
            registry = config.build_registry(store)
            if (source_kind, mirror_kind) not in registry:
                registry.register(source_kind, mirror_kind)
            engine = registry.engine(
                source_kind,
                mirror_kind,
                page_size=page_size or config.page_size,
                fail_fast=config.fail_fast and not keep_going,
            )
        except ConfigurationError as e:
            fail(str(e))

        token = CancellationToken()
        with _cancel_on_interrupt(token):
            report = engine.run(
                dry_run=dry_run,
                cancel=token,
                on_plan=lambda plan: echo_normal(f"Processing {plan.sources_scanned} records...", verbosity),
                on_action=lambda action, record: echo_verbose(_describe(action, record), verbosity),
            )

    if report.status == ReconcileStatus.DRY_RUN:
        echo_quiet(click.style(
            "Warning: Dry run. View the table below to see how many records would be repaired.",
            fg="yellow"), verbosity)
        echo_quiet(f"{'action':<22}{'count':>6}", verbosity)
        echo_quiet("-" * 28, verbosity)
        for row in report.rows():
            echo_quiet(f"{row['action']:<22}{row['count']:>6}", verbosity)
        return

    if report.status == ReconcileStatus.IN_SYNC:
        echo_normal(click.style(f"✓ {engine.relationship} is in sync, no action needed.", fg="green"), verbosity)
        return

    if report.status == ReconcileStatus.CANCELLED:
        echo_quiet(click.style(f"Sync cancelled after {report.touched} records.", fg="yellow"), verbosity)
        ctx.exit(1)

    if report.status == ReconcileStatus.FAILED:
        for failure in report.failures or [report.failure]:
            echo_quiet(click.style(f"Error: {failure}", fg="red"), verbosity)
        echo_quiet(f"{report.touched} records synced before the failure.", verbosity)
        ctx.exit(1)

    echo_quiet(click.style(
        f"✓ Process complete. Successfully synced {report.touched} records.", fg="green"), verbosity)


@sync_group.command('check')
@click.argument('record_type', type=click.Choice(['post_type', 'taxonomy', 'source', 'mirror']))
@click.option('--id', 'record_id', required=True, help='ID of the record to check')
@click.option('--tax', 'mirror_kind', default=None, help='Mirror kind (required for taxonomy/mirror)')
@click.pass_context
def check(ctx, record_type: str, record_id: str, mirror_kind: str) -> None:
    """Check whether a record has an intact association.

    Reports the status only; nothing is repaired. Exits with status 1 when
    the association is missing or broken.

    \b
    Examples:
        shadowsync check post_type --id=3f2a...
        shadowsync check taxonomy --id=9c1d... --tax=offices
    """
    verbosity = ctx.obj.get('verbosity', 1)
    config = require_config(ctx)
    is_mirror = record_type in ('taxonomy', 'mirror')

    try:
        store = config.open_store(event_bus=EventBus())
    except ShadowSyncError as e:
        fail(str(e))

    with store:
        if mirror_kind is not None and not store.mirrors.kind_exists(mirror_kind):
            fail("Please provide a valid mirror kind (--tax).")
        if is_mirror and mirror_kind is None:
            fail("Please provide a valid mirror kind (--tax).")

        try:
            if is_mirror:
                result = store.associations.check_mirror(record_id, mirror_kind)
            else:
                result = store.associations.check_source(record_id, mirror_kind)
        except ShadowSyncError as e:
            fail(str(e))

    if result.intact:
        echo_quiet(click.style(
            f"✓ Association is in sync: {result.side} {result.record_id} <-> {result.counterpart_id}",
            fg="green"), verbosity)
        return

    counterpart = "source" if is_mirror else "mirror"
    if result.counterpart_id is None:
        echo_quiet(click.style(f"Error: Associated {counterpart} not found", fg="red"), verbosity)
    else:
        echo_quiet(click.style(f"Error: Association with {counterpart} {result.counterpart_id} is broken",
                               fg="red"), verbosity)
        for problem in result.problems:
            echo_normal(f"  - {problem}", verbosity)
    ctx.exit(1)


@sync_group.command('relationships')
@click.pass_context
def relationships(ctx) -> None:
    """List configured relationships and known kinds."""
    verbosity = ctx.obj.get('verbosity', 1)
    config = require_config(ctx)

    try:
        with config.open_store(event_bus=EventBus()) as store:
            registry = config.build_registry(store)
            rows = [
                (rel, store.sources.count(rel.source_kind), store.mirrors.count(rel.mirror_kind))
                for rel in registry.relationships()
            ]
            source_kinds = store.sources.kinds()
            mirror_kinds = store.mirrors.kinds()
    except ShadowSyncError as e:
        fail(str(e))

    echo_normal(click.style("Relationships:", fg="cyan", bold=True), verbosity)
    if not rows:
        echo_quiet("  (none configured)", verbosity)
    for rel, source_count, mirror_count in rows:
        echo_quiet(f"  {rel}", verbosity)
        echo_verbose(f"    {source_count} source records, {mirror_count} mirror records", verbosity)

    echo_normal("", verbosity)
    echo_normal(f"Source kinds: {', '.join(source_kinds) or '-'}", verbosity)
    echo_normal(f"Mirror kinds: {', '.join(mirror_kinds) or '-'}", verbosity)

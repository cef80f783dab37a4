"""
Snapshot Audit Tool — independent consistency check of the organizational tree.

Loads a snapshot exported from the persistence services and re-validates it:
data inconsistencies (dangling parents, multiple principal congregations,
unknown members) and invariant violations (Kids leadership gender, training
exclusivity, Kids leader rank). Optionally prints what a given member may do
on every node.

Usage:
    python -m redeguard.audit snapshot.json
    python -m redeguard.audit snapshot.json --actor 42
    python -m redeguard.audit snapshot.json --verbose

Exit codes: 0 clean, 1 problems found, 2 unreadable snapshot.
"""

from __future__ import annotations

import argparse
import logging
import sys

import structlog
from rich.console import Console
from rich.table import Table

from redeguard.config import settings
from redeguard.engine import HierarchyEngine
from redeguard.governance.permissions import Operation
from redeguard.hierarchy.schema import ActorContext
from redeguard.hierarchy.snapshot import HierarchySnapshot, SnapshotError, load_snapshot

console = Console()


def configure_logging() -> None:
    """
    Render CLI events and library log records through one structlog pipeline.

    The engine modules log through ``logging.getLogger(__name__)``; their
    records are formatted by the same processors as the CLI's own events.
    """
    renderer = (
        structlog.dev.ConsoleRenderer()
        if settings.log_format != "json"
        else structlog.processors.JSONRenderer()
    )
    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *shared_processors,
            structlog.processors.StackInfoRenderer(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    ))
    root = logging.getLogger()
    # Replace a handler installed by an earlier call
    for existing in list(root.handlers):
        if isinstance(existing.formatter, structlog.stdlib.ProcessorFormatter):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.getLevelName(settings.log_level))


def run_audit(
    snapshot: HierarchySnapshot,
    actor: ActorContext | None = None,
    verbose: bool = False,
) -> bool:
    """
    Run a full consistency audit of a snapshot.

    Args:
        snapshot: The snapshot to audit.
        actor: If given, print this member's permission matrix.
        verbose: Print the node inventory if True.

    Returns:
        True if the snapshot is clean, False otherwise.
    """
    log = structlog.get_logger()
    engine = HierarchyEngine(snapshot)

    console.print("\n[bold blue]═══ Organizational Tree Audit ═══[/bold blue]")
    console.print(
        f"  Congregações: [bold]{len(snapshot.congregacoes)}[/bold]  "
        f"Redes: [bold]{len(snapshot.redes)}[/bold]  "
        f"Discipulados: [bold]{len(snapshot.discipulados)}[/bold]  "
        f"Células: [bold]{len(snapshot.celulas)}[/bold]  "
        f"Members: [bold]{len(snapshot.members)}[/bold]"
    )

    principal = engine.permissions.principal
    if principal is not None:
        console.print(f"  Principal congregation: [bold]{principal.name or principal.id}[/bold]")
    else:
        console.print("  [yellow]⚠ No unambiguous principal congregation[/yellow]")

    warnings = engine.inconsistencies()
    violations = engine.guard.check_invariants()
    log.info(
        "redeguard.audit.completed",
        warnings=len(warnings),
        violations=len(violations),
    )

    if warnings:
        table = Table(title="Data inconsistencies", show_lines=True)
        table.add_column("Kind", style="yellow", width=22)
        table.add_column("Node", style="cyan", width=10)
        table.add_column("Detail")
        for warning in warnings:
            table.add_row(
                warning.kind.value,
                str(warning.node_id) if warning.node_id is not None else "—",
                warning.message,
            )
        console.print(table)

    if violations:
        table = Table(title="Invariant violations", show_lines=True)
        table.add_column("Kind", style="red", width=28)
        table.add_column("Node", style="cyan", width=8)
        table.add_column("Member", style="magenta", width=8)
        table.add_column("Detail")
        for violation in violations:
            table.add_row(
                violation.kind.value,
                str(violation.node_id) if violation.node_id is not None else "—",
                str(violation.member_id) if violation.member_id is not None else "—",
                violation.message,
            )
        console.print(table)

    if verbose:
        table = Table(title="Inventory", show_lines=True)
        table.add_column("Type", style="green", width=12)
        table.add_column("Id", style="cyan", width=8)
        table.add_column("Name")
        table.add_column("Children", width=9)
        table.add_column("Kids", width=5)
        for node in (
            *snapshot.congregacoes,
            *snapshot.redes,
            *snapshot.discipulados,
            *snapshot.celulas,
        ):
            table.add_row(
                type(node).__name__,
                str(node.id),
                node.name,
                str(engine.resolver.child_count(node)),
                "✓" if engine.resolver.is_kids_subtree(node) else "",
            )
        console.print(table)

    if actor is not None:
        print_permission_matrix(engine, actor)

    is_clean = not warnings and not violations
    if is_clean:
        console.print("[bold green]✓ CLEAN[/bold green]")
    else:
        console.print(
            f"[bold red]✗ {len(warnings)} inconsistencies, "
            f"{len(violations)} violations[/bold red]"
        )
    console.print("\n[bold blue]═══ Audit Complete ═══[/bold blue]\n")
    return is_clean


def print_permission_matrix(engine: HierarchyEngine, actor: ActorContext) -> None:
    """Print one row per node with the actor's decision for each operation."""
    operations = (Operation.VIEW, Operation.CREATE, Operation.EDIT, Operation.DELETE)
    table = Table(title=f"Permissions of member {actor.id}", show_lines=True)
    table.add_column("Type", style="green", width=12)
    table.add_column("Id", style="cyan", width=8)
    for operation in operations:
        table.add_column(operation.value, width=8)
    table.add_column("Reason")

    snapshot = engine.snapshot
    for node in (*snapshot.congregacoes, *snapshot.redes, *snapshot.discipulados, *snapshot.celulas):
        decisions = [engine.resolve(actor, node, operation) for operation in operations]
        table.add_row(
            type(node).__name__,
            str(node.id),
            *("✓" if d.allow else "✗" for d in decisions),
            decisions[0].reason.value,
        )
    console.print(table)


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        description="Audit an organizational tree snapshot for consistency"
    )
    parser.add_argument("snapshot", help="Path to the snapshot JSON file")
    parser.add_argument(
        "--actor",
        type=int,
        default=None,
        help="Member id whose permission matrix should be printed",
    )
    parser.add_argument(
        "--admin",
        action="store_true",
        help="Treat --actor as an administrator",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Show the node inventory",
    )
    args = parser.parse_args(argv)

    configure_logging()

    try:
        snapshot = load_snapshot(args.snapshot)
    except SnapshotError as e:
        console.print(f"[bold red]✗ {e}[/bold red]")
        sys.exit(2)

    actor = None
    if args.actor is not None:
        member = snapshot.get_member(args.actor)
        actor = ActorContext(
            id=args.actor,
            is_admin=args.admin,
            ministry_type=member.ministry_type if member else None,
            gender=member.gender if member else None,
        )

    is_clean = run_audit(snapshot, actor=actor, verbose=args.verbose)
    sys.exit(0 if is_clean else 1)


if __name__ == "__main__":
    main()

"""
Hierarchy Engine — one entrypoint per mutation path.

Binds the resolver, the permission engine and the integrity guard to a
single snapshot. Permission and referential safety are independent gates;
the ``authorize_*`` methods run both and report each outcome so the UI can
explain exactly why an action is blocked.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from redeguard.governance.integrity import IntegrityGuard, Violation
from redeguard.governance.permissions import (
    Decision,
    DecisionReason,
    Operation,
    PermissionEngine,
)
from redeguard.governance.propagation import HierarchyEdit, PropagationResult, propagate
from redeguard.hierarchy.resolver import DataWarning, HierarchyResolver
from redeguard.hierarchy.schema import ActorContext, Celula, EditableField, Node
from redeguard.hierarchy.snapshot import HierarchySnapshot

logger = logging.getLogger(__name__)

# Default of optional update arguments: keep the stored value
UNCHANGED = object()


@dataclass(frozen=True)
class MutationCheck:
    """Combined outcome of the permission gate and the integrity gate."""

    decision: Decision
    violations: tuple[Violation, ...] = ()

    @property
    def allowed(self) -> bool:
        return self.decision.allow and not self.violations


@dataclass(frozen=True)
class CelulaEditPermissions:
    """Which structural selects of the cell form are enabled."""

    can_edit_congregacao: bool
    can_edit_rede: bool
    can_edit_discipulado: bool
    can_edit_leader: bool


class HierarchyEngine:
    """
    Facade over one snapshot.

    Build one engine per snapshot load; every derived structure (indexes,
    principal congregation) is computed at construction and shared by all
    calls. Instances are safe to share across threads.
    """

    def __init__(self, snapshot: HierarchySnapshot) -> None:
        if snapshot is None:
            raise ValueError("HierarchyEngine requires a snapshot")
        self.snapshot = snapshot
        self.resolver = HierarchyResolver(snapshot)
        self.permissions = PermissionEngine(snapshot, resolver=self.resolver)
        self.guard = IntegrityGuard(snapshot, resolver=self.resolver)

    def resolve(
        self,
        actor: ActorContext,
        node: Node,
        operation: Operation,
        field: EditableField | None = None,
    ) -> Decision:
        return self.permissions.resolve(actor, node, operation, field)

    def authorize_delete(self, actor: ActorContext, node: Node) -> MutationCheck:
        """Delete requires both permission and zero direct children."""
        decision = self.permissions.resolve(actor, node, Operation.DELETE)
        violation = self.guard.can_delete(node)
        check = MutationCheck(
            decision=decision,
            violations=(violation,) if violation else (),
        )
        if decision.allow and violation:
            logger.info(
                "Delete blocked by integrity: %s %s has %d children",
                type(node).__name__,
                node.id,
                violation.count,
            )
        return check

    def authorize_celula_update(
        self,
        actor: ActorContext,
        celula: Celula,
        discipulado_id: int | None = None,
        leader_member_id: int | None | object = UNCHANGED,
        host_member_id: int | None | object = UNCHANGED,
        leaders_in_training: Iterable[int] | None = None,
    ) -> MutationCheck:
        """
        Gate an update of an existing cell.

        Only the arguments that differ from the stored cell are permission
        checked as individual fields; all proposed values are validated by
        the guard. Pass ``None`` as leader or host to clear it; leave the
        default to keep the stored value.

        Moving the cell to another discipulado also requires CREATE on the
        target, and the REDE / CONGREGACAO fields when the move crosses a
        network or a congregation.
        """
        proposed_discipulado = (
            discipulado_id if discipulado_id is not None else celula.discipulado_id
        )
        proposed_leader = (
            celula.leader_member_id if leader_member_id is UNCHANGED else leader_member_id
        )
        proposed_host = (
            celula.host_member_id if host_member_id is UNCHANGED else host_member_id
        )
        proposed_trainees = (
            frozenset(leaders_in_training)
            if leaders_in_training is not None
            else celula.leaders_in_training
        )

        touched: list[EditableField] = []
        if proposed_discipulado != celula.discipulado_id:
            touched.append(EditableField.DISCIPULADO)
        if proposed_leader != celula.leader_member_id:
            touched.append(EditableField.LEADER)
        if proposed_host != celula.host_member_id:
            touched.append(EditableField.HOST)
        if proposed_trainees != celula.leaders_in_training:
            touched.append(EditableField.LEADERS_IN_TRAINING)

        decision = self.permissions.resolve(actor, celula, Operation.EDIT)
        for field_name in touched:
            if not decision.allow:
                break
            decision = self.permissions.resolve(
                actor, celula, Operation.EDIT_FIELD, field_name
            )
        if decision.allow and EditableField.DISCIPULADO in touched:
            decision = self._authorize_move(actor, celula, proposed_discipulado)

        violations = self.guard.validate_celula_assignment(
            discipulado_id=proposed_discipulado,
            leader_member_id=proposed_leader,
            host_member_id=proposed_host,
            leaders_in_training=proposed_trainees,
            celula_id=celula.id,
        )
        return MutationCheck(decision=decision, violations=tuple(violations))

    def authorize_multiply(self, actor: ActorContext, celula: Celula) -> MutationCheck:
        """Multiplying opens a new cell beside this one; the leader may not."""
        return MutationCheck(
            decision=self.permissions.resolve(actor, celula, Operation.MULTIPLY)
        )

    def _authorize_move(
        self,
        actor: ActorContext,
        celula: Celula,
        target_id: int,
    ) -> Decision:
        target = self.snapshot.get_discipulado(target_id)
        if target is None:
            return Decision(
                allow=False,
                reason=DecisionReason.NO_AUTHORITY,
                operation=Operation.EDIT_FIELD,
                field=EditableField.DISCIPULADO,
                message=f"Target discipulado {target_id} does not exist.",
            )

        decision = self.permissions.resolve(actor, target, Operation.CREATE)
        if not decision.allow:
            return decision

        current = self.resolver.ancestors(celula)
        destination = self.resolver.ancestors(target)
        current_rede = current.rede.id if current.rede else None
        current_congregacao = current.congregacao.id if current.congregacao else None
        if target.rede_id != current_rede:
            decision = self.permissions.resolve(
                actor, celula, Operation.EDIT_FIELD, EditableField.REDE
            )
            if not decision.allow:
                return decision
        destination_congregacao = (
            destination.congregacao.id if destination.congregacao else None
        )
        if destination_congregacao != current_congregacao:
            decision = self.permissions.resolve(
                actor, celula, Operation.EDIT_FIELD, EditableField.CONGREGACAO
            )
        return decision

    def edit_permissions(self, actor: ActorContext, celula: Celula) -> CelulaEditPermissions:
        """Per-select flags of the cell edit form."""
        def can(field_name: EditableField) -> bool:
            return self.permissions.can(actor, celula, Operation.EDIT_FIELD, field_name)

        return CelulaEditPermissions(
            can_edit_congregacao=can(EditableField.CONGREGACAO),
            can_edit_rede=can(EditableField.REDE),
            can_edit_discipulado=can(EditableField.DISCIPULADO),
            can_edit_leader=can(EditableField.LEADER),
        )

    def propagate(self, edit: HierarchyEdit) -> PropagationResult:
        return propagate(edit, self.snapshot, guard=self.guard)

    def inconsistencies(self) -> list[DataWarning]:
        return self.resolver.find_inconsistencies()

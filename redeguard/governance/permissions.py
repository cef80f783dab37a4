"""
Permission Resolver — hierarchical authorization over the organizational tree.

Every surface of the dashboard (lists, view modals, edit forms, delete
buttons) asks this module the same question: may this actor perform this
operation on this node? Rules are evaluated in strict priority order and the
first match wins:

1. Administrators may do anything.
2. The president / vice president of the principal congregation (the
   citywide seat) may do anything, at any level.
3. Otherwise the actor's highest role on the node's ancestor path decides:
   - a congregation's pastor / vice governs everything beneath it;
   - a network pastor governs discipleships and cells of the network, but
     never moves anything between congregations;
   - a discipulador governs the cells of the discipleship, but never moves
     them between discipleships;
   - a cell leader may only view their own cell, never multiply it.
4. Nothing matched: deny.

Denials are expected and frequent. They are ordinary return values, never
exceptions, and are not logged as errors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from redeguard.hierarchy.resolver import Ancestors, HierarchyResolver
from redeguard.hierarchy.schema import (
    ActorContext,
    Celula,
    Congregacao,
    Discipulado,
    EditableField,
    HierarchyLevel,
    Node,
    Rede,
    level_of,
)
from redeguard.hierarchy.snapshot import HierarchySnapshot

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    """Operations gated by the resolver."""

    VIEW = "view"
    CREATE = "create"  # evaluated on the parent of the node being created
    EDIT = "edit"
    EDIT_FIELD = "edit_field"
    DELETE = "delete"
    MULTIPLY = "multiply"  # célula only; split into a new cell


class DecisionReason(str, Enum):
    """Which rule produced a decision."""

    ADMIN = "admin"
    CITY_WIDE_OVERRIDE = "city_wide_override"
    DIRECT_AUTHORITY = "direct_authority"
    SELF_LEADER_READ_ONLY = "self_leader_read_only"
    NO_AUTHORITY = "no_authority"


@dataclass(frozen=True)
class Decision:
    """Result of resolving an (actor, node, operation, field) tuple."""

    allow: bool
    reason: DecisionReason
    operation: Operation
    message: str
    field: EditableField | None = None
    level: HierarchyLevel | None = None

    def __bool__(self) -> bool:
        return self.allow


# Fields that exist on each node type. LEADER is the node's own leadership
# reference: pastor de governo, pastor da rede, discipulador or líder.
APPLICABLE_FIELDS: dict[HierarchyLevel, frozenset[EditableField]] = {
    HierarchyLevel.CONGREGACAO: frozenset({
        EditableField.LEADER,
        EditableField.KIDS_LEADER,
        EditableField.IS_PRINCIPAL,
    }),
    HierarchyLevel.REDE: frozenset({
        EditableField.CONGREGACAO,
        EditableField.LEADER,
        EditableField.IS_KIDS,
    }),
    HierarchyLevel.DISCIPULADO: frozenset({
        EditableField.CONGREGACAO,
        EditableField.REDE,
        EditableField.LEADER,
        EditableField.DISCIPLES,
    }),
    HierarchyLevel.CELULA: frozenset({
        EditableField.CONGREGACAO,
        EditableField.REDE,
        EditableField.DISCIPULADO,
        EditableField.LEADER,
        EditableField.HOST,
        EditableField.LEADERS_IN_TRAINING,
    }),
}

_LEVEL_NAMES: dict[HierarchyLevel, str] = {
    HierarchyLevel.CONGREGACAO: "congregação",
    HierarchyLevel.REDE: "rede",
    HierarchyLevel.DISCIPULADO: "discipulado",
    HierarchyLevel.CELULA: "célula",
}


class PermissionEngine:
    """
    Central permission resolver bound to one snapshot.

    The principal congregation is resolved once, when the engine is built,
    and reused for every call. Build a new engine when the snapshot is
    reloaded.
    """

    def __init__(
        self,
        snapshot: HierarchySnapshot,
        resolver: HierarchyResolver | None = None,
    ) -> None:
        self.resolver = resolver or HierarchyResolver(snapshot)
        self.snapshot = self.resolver.snapshot
        self.principal = self.resolver.principal_congregacao()

    def resolve(
        self,
        actor: ActorContext,
        node: Node,
        operation: Operation,
        field: EditableField | None = None,
    ) -> Decision:
        """
        Decide whether ``actor`` may perform ``operation`` on ``node``.

        Args:
            actor: The acting member.
            node: Target node. For CREATE, the intended parent.
            operation: The operation being attempted.
            field: Required for EDIT_FIELD, forbidden otherwise.

        Returns:
            Decision with allow flag, reason and explanation.

        Raises:
            ValueError: For malformed requests (missing actor, missing or
                inapplicable field).
            TypeError: If ``node`` is not a hierarchy node.
        """
        if actor is None:
            raise ValueError("resolve() requires an actor")
        operation = Operation(operation)
        if field is not None:
            field = EditableField(field)
        target_level = level_of(node)
        self._check_field(target_level, operation, field)

        if actor.is_admin:
            return Decision(
                allow=True,
                reason=DecisionReason.ADMIN,
                operation=operation,
                field=field,
                message="Administrators may perform any operation.",
            )

        if self.principal is not None and actor.id in self.principal.authority_ids:
            return Decision(
                allow=True,
                reason=DecisionReason.CITY_WIDE_OVERRIDE,
                operation=operation,
                field=field,
                message=(
                    f"Member {actor.id} presides the principal congregation "
                    f"'{self.principal.name}' and may act at any level."
                ),
            )

        ancestors = self.resolver.ancestors(node)
        authority = self._authority_level(actor, node, ancestors)

        decision: Decision | None = None
        if authority == HierarchyLevel.CELULA:
            decision = self._self_leader(operation, field)
        elif authority is not None and authority < target_level:
            decision = self._ancestor_authority(authority, target_level, operation, field)
        elif authority is not None:
            decision = self._own_node_authority(node, operation, field)

        if (decision is None or not decision.allow) and operation == Operation.VIEW:
            allowlist = actor.allowlist_for(target_level)
            if allowlist is not None and node.id in allowlist:
                decision = Decision(
                    allow=True,
                    reason=DecisionReason.DIRECT_AUTHORITY,
                    operation=operation,
                    level=target_level,
                    message=(
                        f"The {_LEVEL_NAMES[target_level]} is in the member's "
                        f"precomputed visibility scope."
                    ),
                )

        if decision is None:
            decision = Decision(
                allow=False,
                reason=DecisionReason.NO_AUTHORITY,
                operation=operation,
                field=field,
                message=(
                    f"Member {actor.id} holds no authority over "
                    f"{_LEVEL_NAMES[target_level]} {node.id}."
                ),
            )

        if not decision.allow:
            logger.debug(
                "Permission denied: actor=%s node=%s:%s op=%s field=%s reason=%s",
                actor.id,
                type(node).__name__,
                node.id,
                operation.value,
                field.value if field else None,
                decision.reason.value,
            )
        return decision

    def can(
        self,
        actor: ActorContext,
        node: Node,
        operation: Operation,
        field: EditableField | None = None,
    ) -> bool:
        return self.resolve(actor, node, operation, field).allow

    def field_permissions(
        self,
        actor: ActorContext,
        node: Node,
    ) -> dict[EditableField, bool]:
        """EDIT_FIELD outcome for every field of the node's type."""
        return {
            field: self.can(actor, node, Operation.EDIT_FIELD, field)
            for field in sorted(APPLICABLE_FIELDS[level_of(node)], key=lambda f: f.value)
        }

    # ── Rule helpers ───────────────────────────────────────────

    @staticmethod
    def _check_field(
        target_level: HierarchyLevel,
        operation: Operation,
        field: EditableField | None,
    ) -> None:
        if operation == Operation.EDIT_FIELD:
            if field is None:
                raise ValueError("EDIT_FIELD requires a field")
            field = EditableField(field)
            if field not in APPLICABLE_FIELDS[target_level]:
                raise ValueError(
                    f"Field '{field.value}' does not exist on a "
                    f"{_LEVEL_NAMES[target_level]}"
                )
        elif field is not None:
            raise ValueError(f"A field only applies to EDIT_FIELD, not {operation.value}")
        if operation == Operation.MULTIPLY and target_level != HierarchyLevel.CELULA:
            raise ValueError(
                f"Only a célula can be multiplied, not a {_LEVEL_NAMES[target_level]}"
            )

    @staticmethod
    def _authority_level(
        actor: ActorContext,
        node: Node,
        ancestors: Ancestors,
    ) -> HierarchyLevel | None:
        """Highest (closest to the root) role the actor holds on the node's path."""
        congregacao = node if isinstance(node, Congregacao) else ancestors.congregacao
        if congregacao is not None and actor.id in congregacao.authority_ids:
            return HierarchyLevel.CONGREGACAO

        rede = node if isinstance(node, Rede) else ancestors.rede
        if rede is not None and rede.pastor_member_id == actor.id:
            return HierarchyLevel.REDE

        discipulado = node if isinstance(node, Discipulado) else ancestors.discipulado
        if discipulado is not None and discipulado.discipulador_member_id == actor.id:
            return HierarchyLevel.DISCIPULADO

        if isinstance(node, Celula) and node.leader_member_id == actor.id:
            return HierarchyLevel.CELULA

        return None

    @staticmethod
    def _ancestor_authority(
        authority: HierarchyLevel,
        target_level: HierarchyLevel,
        operation: Operation,
        field: EditableField | None,
    ) -> Decision:
        """Authority held above the target: full control minus upward moves."""
        role = _LEVEL_NAMES[authority]
        if operation != Operation.EDIT_FIELD:
            return Decision(
                allow=True,
                reason=DecisionReason.DIRECT_AUTHORITY,
                operation=operation,
                level=authority,
                message=f"The {role} governs this {_LEVEL_NAMES[target_level]}.",
            )

        # A role may only reassign fields strictly beneath its level. A
        # congregation's authority may also move networks and discipleships
        # between congregations; a cell's congregação stays with the citywide seat.
        field_level = field.level
        allowed = field_level is not None and (
            field_level > authority
            or (
                authority == HierarchyLevel.CONGREGACAO
                and target_level != HierarchyLevel.CELULA
            )
        )
        return Decision(
            allow=allowed,
            reason=DecisionReason.DIRECT_AUTHORITY,
            operation=operation,
            field=field,
            level=authority,
            message=(
                f"The {role} may change '{field.value}'."
                if allowed
                else f"The {role} may not change '{field.value}'; that requires "
                f"higher authority."
            ),
        )

    def _own_node_authority(
        self,
        node: Node,
        operation: Operation,
        field: EditableField | None,
    ) -> Decision:
        """The actor holds the role of the target node itself."""
        level = node.level
        allowed: bool

        if level == HierarchyLevel.CONGREGACAO:
            allowed = field != EditableField.IS_PRINCIPAL
        elif level == HierarchyLevel.REDE:
            if operation == Operation.EDIT_FIELD:
                allowed = field.level is not None and field.level > HierarchyLevel.REDE
            else:
                allowed = operation != Operation.DELETE
        else:
            # Discipulador on their own discipleship
            if operation in (Operation.VIEW, Operation.CREATE):
                allowed = True
            elif operation == Operation.EDIT_FIELD:
                allowed = (
                    field == EditableField.DISCIPLES
                    and self.resolver.is_kids_subtree(node)
                )
            else:
                allowed = False

        what = f"'{field.value}'" if field is not None else operation.value
        return Decision(
            allow=allowed,
            reason=DecisionReason.DIRECT_AUTHORITY,
            operation=operation,
            field=field,
            level=level,
            message=(
                f"The {_LEVEL_NAMES[level]}'s own leadership may {what} it."
                if allowed
                else f"The {_LEVEL_NAMES[level]}'s own leadership may not {what} it."
            ),
        )

    @staticmethod
    def _self_leader(operation: Operation, field: EditableField | None) -> Decision:
        allowed = operation == Operation.VIEW
        return Decision(
            allow=allowed,
            reason=DecisionReason.SELF_LEADER_READ_ONLY,
            operation=operation,
            field=field,
            level=HierarchyLevel.CELULA,
            message=(
                "A cell leader may view their own cell."
                if allowed
                else "A cell leader cannot alter their own cell's structure."
            ),
        )

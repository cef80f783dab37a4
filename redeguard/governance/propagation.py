"""
Auto-Propagation Rule — keeps an in-flight edit internally consistent.

Multi-field forms let the user pick a congregação, a rede and a discipulado
independently. Whenever a parent reference changes, the dependent ancestor
fields are derived from the snapshot:

- choosing a discipulado fills in its rede and that rede's congregação,
  overwriting any earlier choice;
- choosing a rede fills in its congregação and leaves the discipulado for the
  caller to re-choose or clear;
- landing in the Kids subtree clears every leadership candidate that fails
  the gender restriction and reports why.

The rule never touches persisted data, only edit state. It is pure and
idempotent: propagating an already consistent edit changes nothing.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict, Field

from redeguard.governance.integrity import IntegrityGuard, Violation
from redeguard.hierarchy.schema import EditableField, HierarchyLevel
from redeguard.hierarchy.snapshot import HierarchySnapshot


class HierarchyEdit(BaseModel):
    """
    Form state of a node being created or edited.

    ``level`` is the type of node under edit. ``leader_member_id`` is that
    node's own leadership reference (pastor da rede, discipulador or líder).
    ``changed`` names the field the user touched last.
    """

    model_config = ConfigDict(frozen=True)

    level: HierarchyLevel = HierarchyLevel.CELULA
    congregacao_id: int | None = None
    rede_id: int | None = None
    discipulado_id: int | None = None
    is_kids: bool | None = None
    leader_member_id: int | None = None
    host_member_id: int | None = None
    leaders_in_training: frozenset[int] = Field(default_factory=frozenset)
    changed: EditableField | None = None


@dataclass(frozen=True)
class PropagationResult:
    """The consistent edit plus the selections that had to be dropped."""

    edit: HierarchyEdit
    violations: tuple[Violation, ...] = ()


def propagate(
    edit: HierarchyEdit,
    snapshot: HierarchySnapshot,
    guard: IntegrityGuard | None = None,
) -> PropagationResult:
    """
    Derive consistent ancestor fields and drop invalid Kids leadership.

    Args:
        edit: Current form state.
        snapshot: Snapshot used to look up parents.
        guard: Integrity guard to reuse; built from the snapshot if omitted.

    Returns:
        PropagationResult. ``propagate(result.edit, ...).edit == result.edit``.
    """
    guard = guard or IntegrityGuard(snapshot)
    updates: dict = {}

    congregacao_id = edit.congregacao_id
    rede_id = edit.rede_id
    changed = edit.changed

    if edit.level > HierarchyLevel.REDE:
        if edit.discipulado_id is not None and changed in (None, EditableField.DISCIPULADO):
            discipulado = snapshot.get_discipulado(edit.discipulado_id)
            if discipulado is not None:
                rede_id = discipulado.rede_id
        if rede_id is not None and changed in (
            None,
            EditableField.DISCIPULADO,
            EditableField.REDE,
        ):
            rede = snapshot.get_rede(rede_id)
            if rede is not None:
                congregacao_id = rede.congregacao_id

    if rede_id != edit.rede_id:
        updates["rede_id"] = rede_id
    if congregacao_id != edit.congregacao_id:
        updates["congregacao_id"] = congregacao_id

    # Kids leadership
    if edit.level == HierarchyLevel.REDE:
        is_kids = bool(edit.is_kids)
    else:
        rede = snapshot.get_rede(rede_id)
        is_kids = rede is not None and rede.is_kids

    violations: list[Violation] = []
    if is_kids:
        violation = guard.check_gender(
            True, edit.leader_member_id, EditableField.LEADER, None
        )
        if violation is not None:
            violations.append(violation)
            updates["leader_member_id"] = None

        kept: set[int] = set()
        for member_id in sorted(edit.leaders_in_training):
            violation = guard.check_gender(
                True, member_id, EditableField.LEADERS_IN_TRAINING, None
            )
            if violation is None:
                kept.add(member_id)
            else:
                violations.append(violation)
        if len(kept) != len(edit.leaders_in_training):
            updates["leaders_in_training"] = frozenset(kept)

    new_edit = edit.model_copy(update=updates) if updates else edit
    return PropagationResult(edit=new_edit, violations=tuple(violations))

"""
Integrity Guard — structural invariants checked before every mutation.

Invoked before create/update/delete calls reach the persistence
collaborator. Each check returns None when the mutation is safe, or a
Violation the caller surfaces verbatim to the user. Nothing here mutates the
snapshot and nothing raises for a violation: a violation is an expected,
user-correctable outcome.

Invariants enforced:
- A node may be deleted only when it has no direct children.
- Leadership of the Kids subtree (network pastor, discipulador, cell leader,
  leaders in training) is restricted to one gender. The host is not a
  leadership role and is exempt.
- A member trains as leader in at most one Kids cell at a time.
- Leaders and trainees of a Kids cell come from the discipleship's
  disciples.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from redeguard.config import settings
from redeguard.hierarchy.resolver import HierarchyResolver
from redeguard.hierarchy.schema import (
    Congregacao,
    EditableField,
    Gender,
    HierarchyLevel,
    MinistryType,
    Node,
    is_equal_or_higher,
    label_of,
    level_of,
)
from redeguard.hierarchy.snapshot import HierarchySnapshot

logger = logging.getLogger(__name__)


class ViolationKind(str, Enum):
    """Integrity violations surfaced to the user."""

    HAS_CHILDREN = "has_children"
    GENDER_MISMATCH = "gender_mismatch"
    ALREADY_TRAINING_ELSEWHERE = "already_training_elsewhere"
    OUT_OF_SCOPE = "out_of_scope"
    INSUFFICIENT_RANK = "insufficient_rank"


@dataclass(frozen=True)
class Violation:
    """A rejected mutation, with enough context for an actionable message."""

    kind: ViolationKind
    message: str
    count: int | None = None
    member_id: int | None = None
    node_id: int | None = None
    field: EditableField | None = None


_CHILD_NAMES: dict[HierarchyLevel, tuple[str, str]] = {
    HierarchyLevel.CONGREGACAO: ("network", "congregation"),
    HierarchyLevel.REDE: ("discipleship", "network"),
    HierarchyLevel.DISCIPULADO: ("cell", "discipleship"),
}

# Leadership roles subject to the Kids gender restriction
_LEADERSHIP_FIELDS = frozenset({EditableField.LEADER, EditableField.LEADERS_IN_TRAINING})


class IntegrityGuard:
    """
    Validation functions over one snapshot.

    Args:
        snapshot: The snapshot the mutation is checked against.
        required_gender: Gender required for Kids leadership.
        kids_leader_min_ministry: Minimum ministry rank of a congregation's
            Kids leader.
    """

    def __init__(
        self,
        snapshot: HierarchySnapshot,
        resolver: HierarchyResolver | None = None,
        required_gender: Gender | str | None = None,
        kids_leader_min_ministry: MinistryType | str | None = None,
    ) -> None:
        self.resolver = resolver or HierarchyResolver(snapshot)
        self.snapshot = self.resolver.snapshot
        self.required_gender = Gender(required_gender or settings.kids_leadership_gender)
        self.kids_leader_min_ministry = MinistryType(
            kids_leader_min_ministry or settings.kids_leader_min_ministry
        )

    # ── Deletion ───────────────────────────────────────────────

    def can_delete(self, node: Node) -> Violation | None:
        """Certify that ``node`` has no direct children one level down."""
        level = level_of(node)
        count = self.resolver.child_count(node)
        if count == 0:
            return None

        child, parent = _CHILD_NAMES[level]
        plural = child if count == 1 else f"{child}s"
        verb = "references" if count == 1 else "reference"
        return Violation(
            kind=ViolationKind.HAS_CHILDREN,
            count=count,
            node_id=node.id,
            message=f"Cannot delete: {count} {plural} still {verb} this {parent}.",
        )

    # ── Kids leadership ────────────────────────────────────────

    def validate_leadership_gender(
        self,
        node: Node,
        candidate_member_id: int | None,
        field: EditableField = EditableField.LEADER,
    ) -> Violation | None:
        """
        Reject a non-conforming leadership candidate inside the Kids subtree.

        Args:
            node: The Rede, or a Discipulado/Célula beneath it, receiving the
                assignment. For a new node, pass its intended parent.
            candidate_member_id: Member being assigned; None clears the role.
            field: LEADER or LEADERS_IN_TRAINING. HOST is always accepted.
        """
        return self.check_gender(
            is_kids=self.resolver.is_kids_subtree(node),
            candidate_member_id=candidate_member_id,
            field=field,
            node_id=node.id,
        )

    def check_gender(
        self,
        is_kids: bool,
        candidate_member_id: int | None,
        field: EditableField,
        node_id: int | None,
    ) -> Violation | None:
        """Gender check for a node whose Kids status is already known."""
        if candidate_member_id is None or not is_kids:
            return None
        if EditableField(field) not in _LEADERSHIP_FIELDS:
            return None

        member = self.snapshot.get_member(candidate_member_id)
        if member is not None and member.gender == self.required_gender:
            return None

        if member is None:
            logger.warning(
                "Kids leadership candidate %s is not in the member directory",
                candidate_member_id,
            )
        return Violation(
            kind=ViolationKind.GENDER_MISMATCH,
            member_id=candidate_member_id,
            node_id=node_id,
            field=EditableField(field),
            message=(
                f"Kids networks only accept {self.required_gender.value.lower()} "
                f"leadership; member {candidate_member_id} does not qualify."
            ),
        )

    def validate_kids_leader(
        self,
        congregacao: Congregacao,
        candidate_member_id: int | None,
    ) -> Violation | None:
        """A congregation's Kids leader must be a woman ranked PASTOR or above."""
        if candidate_member_id is None:
            return None
        member = self.snapshot.get_member(candidate_member_id)
        if member is None or member.gender != self.required_gender:
            return Violation(
                kind=ViolationKind.GENDER_MISMATCH,
                member_id=candidate_member_id,
                node_id=congregacao.id,
                field=EditableField.KIDS_LEADER,
                message=(
                    f"The Kids leader must be {self.required_gender.value.lower()}; "
                    f"member {candidate_member_id} does not qualify."
                ),
            )
        if not is_equal_or_higher(member.ministry_type, self.kids_leader_min_ministry):
            return Violation(
                kind=ViolationKind.INSUFFICIENT_RANK,
                member_id=candidate_member_id,
                node_id=congregacao.id,
                field=EditableField.KIDS_LEADER,
                message=(
                    f"The Kids leader must hold the position of "
                    f"{label_of(self.kids_leader_min_ministry)} or above; member "
                    f"{candidate_member_id} is {label_of(member.ministry_type)}."
                ),
            )
        return None

    # ── Leaders in training ────────────────────────────────────

    def validate_training_leader_uniqueness(
        self,
        celula_id: int | None,
        candidate_member_id: int,
        discipulado_id: int | None = None,
    ) -> Violation | None:
        """
        Reject a Kids trainee already training in a different Kids cell.

        Args:
            celula_id: The cell receiving the trainee; None for a new cell.
            candidate_member_id: The prospective leader in training.
            discipulado_id: Parent of the receiving cell. Defaults to the
                cell's current discipleship.
        """
        if not self._is_kids_cell(celula_id, discipulado_id):
            return None

        for other in self.snapshot.celulas:
            if other.id == celula_id or candidate_member_id not in other.leaders_in_training:
                continue
            if self.resolver.is_kids_subtree(other):
                return Violation(
                    kind=ViolationKind.ALREADY_TRAINING_ELSEWHERE,
                    member_id=candidate_member_id,
                    node_id=other.id,
                    field=EditableField.LEADERS_IN_TRAINING,
                    message=(
                        f"Member {candidate_member_id} is already a leader in "
                        f"training in cell '{other.name or other.id}'."
                    ),
                )
        return None

    def validate_disciple_scope(
        self,
        celula_id: int | None,
        candidate_member_id: int | None,
        discipulado_id: int | None = None,
    ) -> Violation | None:
        """
        Kids cell leaders and trainees must belong to the discipleship.

        The eligible pool is the discipleship's disciples plus its discipulador
        and the network pastor. Non-Kids cells accept any member.
        """
        if candidate_member_id is None:
            return None
        discipulado = self._discipulado_for(celula_id, discipulado_id)
        if discipulado is None or not self.resolver.is_kids_subtree(discipulado):
            return None

        eligible = set(discipulado.disciples)
        if discipulado.discipulador_member_id is not None:
            eligible.add(discipulado.discipulador_member_id)
        rede = self.resolver.owning_rede(discipulado)
        if rede is not None and rede.pastor_member_id is not None:
            eligible.add(rede.pastor_member_id)

        if candidate_member_id in eligible:
            return None
        return Violation(
            kind=ViolationKind.OUT_OF_SCOPE,
            member_id=candidate_member_id,
            node_id=discipulado.id,
            message=(
                f"Member {candidate_member_id} is not a disciple of discipleship "
                f"'{discipulado.name or discipulado.id}'."
            ),
        )

    # ── Aggregates (one call per mutation path) ────────────────

    def validate_rede_assignment(
        self,
        pastor_member_id: int | None,
        is_kids: bool,
        rede_id: int | None = None,
    ) -> list[Violation]:
        """Checks for creating or updating a Rede with the proposed values."""
        violation = self.check_gender(is_kids, pastor_member_id, EditableField.LEADER, rede_id)
        return [violation] if violation else []

    def validate_discipulado_assignment(
        self,
        rede_id: int,
        discipulador_member_id: int | None,
        discipulado_id: int | None = None,
    ) -> list[Violation]:
        """Checks for creating or updating a Discipulado under ``rede_id``."""
        rede = self.snapshot.get_rede(rede_id)
        violation = self.check_gender(
            is_kids=rede is not None and rede.is_kids,
            candidate_member_id=discipulador_member_id,
            field=EditableField.LEADER,
            node_id=discipulado_id,
        )
        return [violation] if violation else []

    def validate_celula_assignment(
        self,
        discipulado_id: int,
        leader_member_id: int | None = None,
        host_member_id: int | None = None,
        leaders_in_training: Iterable[int] = (),
        celula_id: int | None = None,
    ) -> list[Violation]:
        """
        Every check for creating or updating a Célula with the proposed values.

        Returns all violations found, in field order, so a form can flag each
        offending selection at once.
        """
        violations: list[Violation] = []
        discipulado = self.snapshot.get_discipulado(discipulado_id)
        is_kids = discipulado is not None and self.resolver.is_kids_subtree(discipulado)

        def collect(violation: Violation | None) -> None:
            if violation is not None:
                violations.append(violation)

        collect(self.check_gender(is_kids, leader_member_id, EditableField.LEADER, celula_id))
        collect(self.validate_disciple_scope(celula_id, leader_member_id, discipulado_id))
        collect(self.check_gender(is_kids, host_member_id, EditableField.HOST, celula_id))

        for member_id in sorted(set(leaders_in_training)):
            collect(self.check_gender(
                is_kids, member_id, EditableField.LEADERS_IN_TRAINING, celula_id
            ))
            collect(self.validate_training_leader_uniqueness(celula_id, member_id, discipulado_id))
            collect(self.validate_disciple_scope(celula_id, member_id, discipulado_id))

        return violations

    # ── Whole-snapshot sweep ───────────────────────────────────

    def check_invariants(self) -> list[Violation]:
        """
        Re-validate every persisted assignment in the snapshot.

        Used by the audit tool to find records that predate the guard or were
        written around it.
        """
        violations: list[Violation] = []

        for congregacao in self.snapshot.congregacoes:
            violation = self.validate_kids_leader(congregacao, congregacao.kids_leader_member_id)
            if violation:
                violations.append(violation)

        for rede in self.snapshot.redes:
            violations.extend(
                self.validate_rede_assignment(rede.pastor_member_id, rede.is_kids, rede.id)
            )

        for discipulado in self.snapshot.discipulados:
            violations.extend(self.validate_discipulado_assignment(
                discipulado.rede_id, discipulado.discipulador_member_id, discipulado.id
            ))

        for celula in self.snapshot.celulas:
            violations.extend(self.validate_celula_assignment(
                discipulado_id=celula.discipulado_id,
                leader_member_id=celula.leader_member_id,
                host_member_id=celula.host_member_id,
                leaders_in_training=celula.leaders_in_training,
                celula_id=celula.id,
            ))

        return violations

    # ── Helpers ────────────────────────────────────────────────

    def _discipulado_for(self, celula_id: int | None, discipulado_id: int | None):
        if discipulado_id is None:
            celula = self.snapshot.get_celula(celula_id)
            if celula is None:
                return None
            discipulado_id = celula.discipulado_id
        return self.snapshot.get_discipulado(discipulado_id)

    def _is_kids_cell(self, celula_id: int | None, discipulado_id: int | None) -> bool:
        discipulado = self._discipulado_for(celula_id, discipulado_id)
        return discipulado is not None and self.resolver.is_kids_subtree(discipulado)

"""
Hierarchy Resolver — ancestor lookup over a HierarchySnapshot.

Pure functions that locate a node's ancestors (célula → discipulado → rede →
congregação), the principal congregation of the snapshot, and whether a node
lives in the Kids subtree.

Dangling parent references and multiple principal congregations are data
inconsistencies: they never raise. The affected segment is treated as "no
authority available at that level" and a DataWarning is reported upward.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from redeguard.hierarchy.schema import (
    Celula,
    Congregacao,
    Discipulado,
    HierarchyLevel,
    Node,
    Rede,
    level_of,
)
from redeguard.hierarchy.snapshot import HierarchySnapshot

logger = logging.getLogger(__name__)


class WarningKind(str, enum.Enum):
    """Categories of data inconsistency found in a snapshot."""

    DANGLING_PARENT = "dangling_parent"
    MULTIPLE_PRINCIPALS = "multiple_principals"
    UNKNOWN_MEMBER = "unknown_member"


@dataclass(frozen=True)
class DataWarning:
    """A data inconsistency, reported for operational visibility."""

    kind: WarningKind
    level: HierarchyLevel | None
    node_id: int | None
    message: str


@dataclass(frozen=True)
class Ancestors:
    """The resolved parents of a node; any segment may be missing."""

    discipulado: Discipulado | None = None
    rede: Rede | None = None
    congregacao: Congregacao | None = None


class HierarchyResolver:
    """
    Read-only navigation over one snapshot.

    The resolver holds no state besides the snapshot it was given, so one
    instance may be shared across threads for the life of that snapshot.
    """

    def __init__(self, snapshot: HierarchySnapshot) -> None:
        if snapshot is None:
            raise ValueError("HierarchyResolver requires a snapshot")
        self.snapshot = snapshot

    # ── Ancestors ──────────────────────────────────────────────

    def ancestors(self, node: Node) -> Ancestors:
        """
        Walk parent references from ``node`` up to the root.

        The node itself is not part of the result. Missing intermediate
        references stop the walk; whatever was resolved so far is returned.
        """
        level = level_of(node)
        if level == HierarchyLevel.CONGREGACAO:
            return Ancestors()

        discipulado: Discipulado | None = None
        rede: Rede | None = None

        if isinstance(node, Celula):
            discipulado = self.snapshot.get_discipulado(node.discipulado_id)
            if discipulado is None:
                self._warn_dangling(node, "discipulado", node.discipulado_id)
                return Ancestors()
            rede = self.snapshot.get_rede(discipulado.rede_id)
            if rede is None:
                self._warn_dangling(discipulado, "rede", discipulado.rede_id)
                return Ancestors(discipulado=discipulado)
        elif isinstance(node, Discipulado):
            rede = self.snapshot.get_rede(node.rede_id)
            if rede is None:
                self._warn_dangling(node, "rede", node.rede_id)
                return Ancestors()
        else:
            rede = node

        congregacao = self.snapshot.get_congregacao(rede.congregacao_id)
        if congregacao is None:
            self._warn_dangling(rede, "congregacao", rede.congregacao_id)

        return Ancestors(
            discipulado=discipulado,
            rede=rede if rede is not node else None,
            congregacao=congregacao,
        )

    def owning_rede(self, node: Node) -> Rede | None:
        """The network a node belongs to (the node itself for a Rede)."""
        if isinstance(node, Rede):
            return node
        return self.ancestors(node).rede

    def owning_congregacao(self, node: Node) -> Congregacao | None:
        if isinstance(node, Congregacao):
            return node
        return self.ancestors(node).congregacao

    def is_kids_subtree(self, node: Node) -> bool:
        """True if the node's owning Rede (or the node itself) is a Kids network."""
        rede = self.owning_rede(node)
        return rede is not None and rede.is_kids

    # ── Principal congregation ─────────────────────────────────

    def principal_congregacao(self) -> Congregacao | None:
        """
        The single congregation flagged ``is_principal``.

        Returns None when there is none, and also when there are several:
        ambiguity is a data error to be flagged to the data owner, not a
        tie to break here.
        """
        candidates = self.snapshot.principal_candidates
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            logger.warning(
                "Multiple principal congregations in snapshot: ids=%s",
                [c.id for c in candidates],
            )
        return None

    # ── Children ───────────────────────────────────────────────

    def children(self, node: Node) -> list[Node]:
        """Direct children one level down (cells have none in the tree)."""
        level = level_of(node)
        if level == HierarchyLevel.CONGREGACAO:
            return list(self.snapshot.redes_of(node.id))
        if level == HierarchyLevel.REDE:
            return list(self.snapshot.discipulados_of(node.id))
        if level == HierarchyLevel.DISCIPULADO:
            return list(self.snapshot.celulas_of(node.id))
        return []

    def child_count(self, node: Node) -> int:
        return len(self.children(node))

    # ── Consistency report ─────────────────────────────────────

    def find_inconsistencies(self) -> list[DataWarning]:
        """
        Scan the whole snapshot for data inconsistencies.

        Checks dangling parent references, multiple principal congregations
        and leadership references to members missing from the directory.
        """
        warnings: list[DataWarning] = []
        snapshot = self.snapshot

        principals = snapshot.principal_candidates
        if len(principals) > 1:
            warnings.append(DataWarning(
                kind=WarningKind.MULTIPLE_PRINCIPALS,
                level=HierarchyLevel.CONGREGACAO,
                node_id=None,
                message=(
                    "More than one principal congregation: "
                    + ", ".join(str(c.id) for c in principals)
                ),
            ))

        for rede in snapshot.redes:
            if snapshot.get_congregacao(rede.congregacao_id) is None:
                warnings.append(_dangling(rede, "congregacao", rede.congregacao_id))
        for discipulado in snapshot.discipulados:
            if snapshot.get_rede(discipulado.rede_id) is None:
                warnings.append(_dangling(discipulado, "rede", discipulado.rede_id))
        for celula in snapshot.celulas:
            if snapshot.get_discipulado(celula.discipulado_id) is None:
                warnings.append(_dangling(celula, "discipulado", celula.discipulado_id))

        if snapshot.members:
            for node, member_id in _leadership_references(snapshot):
                if snapshot.get_member(member_id) is None:
                    warnings.append(DataWarning(
                        kind=WarningKind.UNKNOWN_MEMBER,
                        level=node.level,
                        node_id=node.id,
                        message=(
                            f"{type(node).__name__} {node.id} references member "
                            f"{member_id} missing from the member directory"
                        ),
                    ))

        return warnings

    def _warn_dangling(self, node: Node, parent: str, parent_id: int) -> None:
        logger.warning(
            "Dangling parent reference: %s %s -> %s %s",
            type(node).__name__,
            node.id,
            parent,
            parent_id,
        )


def _dangling(node: Node, parent: str, parent_id: int) -> DataWarning:
    return DataWarning(
        kind=WarningKind.DANGLING_PARENT,
        level=node.level,
        node_id=node.id,
        message=f"{type(node).__name__} {node.id} points to missing {parent} {parent_id}",
    )


def _leadership_references(snapshot: HierarchySnapshot):
    for congregacao in snapshot.congregacoes:
        for member_id in (
            congregacao.pastor_governo_member_id,
            congregacao.vice_presidente_member_id,
            congregacao.kids_leader_member_id,
        ):
            if member_id is not None:
                yield congregacao, member_id
    for rede in snapshot.redes:
        if rede.pastor_member_id is not None:
            yield rede, rede.pastor_member_id
    for discipulado in snapshot.discipulados:
        if discipulado.discipulador_member_id is not None:
            yield discipulado, discipulado.discipulador_member_id
    for celula in snapshot.celulas:
        for member_id in (celula.leader_member_id, celula.host_member_id):
            if member_id is not None:
                yield celula, member_id
        for member_id in sorted(celula.leaders_in_training):
            yield celula, member_id

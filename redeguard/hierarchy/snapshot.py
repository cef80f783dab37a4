"""
Hierarchy Snapshot — in-memory read model of the organizational tree.

The snapshot is assembled by the caller from the listing endpoints of the
persistence collaborator. Lookup indexes and the principal congregation are
derived once, when the snapshot is built, and never recomputed: reloading
data means building a new snapshot.
"""

from __future__ import annotations

import json
from collections import defaultdict
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, PrivateAttr, ValidationError

from redeguard.hierarchy.schema import (
    Celula,
    Congregacao,
    Discipulado,
    MemberProfile,
    Rede,
)


class SnapshotError(ValueError):
    """Raised when a snapshot payload cannot be turned into a HierarchySnapshot."""


class HierarchySnapshot(BaseModel):
    """
    Point-in-time copy of every Congregação, Rede, Discipulado and Célula,
    plus the member directory needed to resolve candidate genders.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    congregacoes: tuple[Congregacao, ...] = ()
    redes: tuple[Rede, ...] = ()
    discipulados: tuple[Discipulado, ...] = ()
    celulas: tuple[Celula, ...] = ()
    members: tuple[MemberProfile, ...] = ()

    _congregacoes_by_id: dict[int, Congregacao] = PrivateAttr(default_factory=dict)
    _redes_by_id: dict[int, Rede] = PrivateAttr(default_factory=dict)
    _discipulados_by_id: dict[int, Discipulado] = PrivateAttr(default_factory=dict)
    _celulas_by_id: dict[int, Celula] = PrivateAttr(default_factory=dict)
    _members_by_id: dict[int, MemberProfile] = PrivateAttr(default_factory=dict)
    _redes_by_congregacao: dict[int, list[Rede]] = PrivateAttr(default_factory=dict)
    _discipulados_by_rede: dict[int, list[Discipulado]] = PrivateAttr(default_factory=dict)
    _celulas_by_discipulado: dict[int, list[Celula]] = PrivateAttr(default_factory=dict)
    _principal_candidates: tuple[Congregacao, ...] = PrivateAttr(default=())

    def model_post_init(self, __context: Any) -> None:
        self._congregacoes_by_id = {c.id: c for c in self.congregacoes}
        self._redes_by_id = {r.id: r for r in self.redes}
        self._discipulados_by_id = {d.id: d for d in self.discipulados}
        self._celulas_by_id = {c.id: c for c in self.celulas}
        self._members_by_id = {m.id: m for m in self.members}

        redes_by_congregacao: dict[int, list[Rede]] = defaultdict(list)
        for rede in self.redes:
            redes_by_congregacao[rede.congregacao_id].append(rede)
        discipulados_by_rede: dict[int, list[Discipulado]] = defaultdict(list)
        for discipulado in self.discipulados:
            discipulados_by_rede[discipulado.rede_id].append(discipulado)
        celulas_by_discipulado: dict[int, list[Celula]] = defaultdict(list)
        for celula in self.celulas:
            celulas_by_discipulado[celula.discipulado_id].append(celula)

        self._redes_by_congregacao = dict(redes_by_congregacao)
        self._discipulados_by_rede = dict(discipulados_by_rede)
        self._celulas_by_discipulado = dict(celulas_by_discipulado)
        self._principal_candidates = tuple(c for c in self.congregacoes if c.is_principal)

    # ── Lookups ────────────────────────────────────────────────

    def get_congregacao(self, congregacao_id: int | None) -> Congregacao | None:
        return self._congregacoes_by_id.get(congregacao_id)

    def get_rede(self, rede_id: int | None) -> Rede | None:
        return self._redes_by_id.get(rede_id)

    def get_discipulado(self, discipulado_id: int | None) -> Discipulado | None:
        return self._discipulados_by_id.get(discipulado_id)

    def get_celula(self, celula_id: int | None) -> Celula | None:
        return self._celulas_by_id.get(celula_id)

    def get_member(self, member_id: int | None) -> MemberProfile | None:
        return self._members_by_id.get(member_id)

    def redes_of(self, congregacao_id: int) -> list[Rede]:
        return list(self._redes_by_congregacao.get(congregacao_id, ()))

    def discipulados_of(self, rede_id: int) -> list[Discipulado]:
        return list(self._discipulados_by_rede.get(rede_id, ()))

    def celulas_of(self, discipulado_id: int) -> list[Celula]:
        return list(self._celulas_by_discipulado.get(discipulado_id, ()))

    @property
    def principal_candidates(self) -> tuple[Congregacao, ...]:
        """Every congregation flagged ``is_principal`` (normally zero or one)."""
        return self._principal_candidates

    # ── Adapter ────────────────────────────────────────────────

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> HierarchySnapshot:
        """
        Build a snapshot from the collaborator's listing payload.

        Args:
            payload: Mapping with ``congregacoes``, ``redes``, ``discipulados``,
                ``celulas`` and ``members`` lists (camelCase keys accepted).

        Raises:
            SnapshotError: If the payload is not a mapping or fails validation.
        """
        if not isinstance(payload, dict):
            raise SnapshotError(
                f"Snapshot payload must be an object, got {type(payload).__name__}"
            )
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise SnapshotError(f"Invalid snapshot payload: {e}") from e


def load_snapshot(path: str | Path) -> HierarchySnapshot:
    """Read a snapshot JSON document from disk."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise SnapshotError(f"Cannot read snapshot {path}: {e}") from e
    return HierarchySnapshot.from_payload(payload)

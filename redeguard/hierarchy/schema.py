"""
Hierarchy Schema — Pydantic models for the organizational tree.

These models are the canonical read model of the church's organizational
tree as delivered by the persistence services:

    Congregação → Rede → Discipulado → Célula

Every model is immutable. A snapshot is a point-in-time copy owned by the
caller; nothing in this package writes back to it. Models accept both the
camelCase keys of the REST payloads and snake_case Python names.
"""

from __future__ import annotations

import enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ════════════════════════════════════════════════════════════════
# Enumerations
# ════════════════════════════════════════════════════════════════


class Gender(str, enum.Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class MinistryType(str, enum.Enum):
    """Ministry positions, declared from lowest to highest rank."""

    VISITOR = "VISITOR"
    REGULAR_ATTENDEE = "REGULAR_ATTENDEE"
    MEMBER = "MEMBER"
    LEADER_IN_TRAINING = "LEADER_IN_TRAINING"
    LEADER = "LEADER"
    DISCIPULADOR = "DISCIPULADOR"
    PASTOR = "PASTOR"
    PRESIDENT_PASTOR = "PRESIDENT_PASTOR"


class HierarchyLevel(enum.IntEnum):
    """Depth of a node in the tree (0 = root)."""

    CONGREGACAO = 0
    REDE = 1
    DISCIPULADO = 2
    CELULA = 3


class EditableField(str, enum.Enum):
    """Fields that can be individually gated by the Permission Resolver."""

    # Structural parent reassignment
    CONGREGACAO = "congregacao"
    REDE = "rede"
    DISCIPULADO = "discipulado"

    # The node's own leadership reference (pastor / discipulador / líder)
    LEADER = "leader"

    HOST = "host"
    LEADERS_IN_TRAINING = "leaders_in_training"
    DISCIPLES = "disciples"
    KIDS_LEADER = "kids_leader"

    # Flags
    IS_KIDS = "is_kids"
    IS_PRINCIPAL = "is_principal"

    @property
    def level(self) -> HierarchyLevel | None:
        """The tree level a field reassigns; ``None`` for reserved fields."""
        return _FIELD_LEVELS.get(self)


_FIELD_LEVELS: dict[EditableField, HierarchyLevel] = {
    EditableField.CONGREGACAO: HierarchyLevel.CONGREGACAO,
    EditableField.REDE: HierarchyLevel.REDE,
    EditableField.IS_KIDS: HierarchyLevel.REDE,
    EditableField.DISCIPULADO: HierarchyLevel.DISCIPULADO,
    EditableField.LEADER: HierarchyLevel.CELULA,
    EditableField.HOST: HierarchyLevel.CELULA,
    EditableField.LEADERS_IN_TRAINING: HierarchyLevel.CELULA,
    EditableField.DISCIPLES: HierarchyLevel.CELULA,
    EditableField.KIDS_LEADER: HierarchyLevel.CELULA,
}


# ════════════════════════════════════════════════════════════════
# Ministry ranking
# ════════════════════════════════════════════════════════════════

MINISTRY_HIERARCHY: tuple[MinistryType, ...] = tuple(MinistryType)

MINISTRY_LABELS: dict[MinistryType, str] = {
    MinistryType.PRESIDENT_PASTOR: "Pastor Presidente",
    MinistryType.PASTOR: "Pastor",
    MinistryType.DISCIPULADOR: "Discipulador",
    MinistryType.LEADER: "Líder",
    MinistryType.LEADER_IN_TRAINING: "Líder em Treinamento",
    MinistryType.MEMBER: "Membro",
    MinistryType.REGULAR_ATTENDEE: "Frequentador Assíduo",
    MinistryType.VISITOR: "Visitante",
}


def rank_of(ministry_type: MinistryType | str | None) -> int:
    """Numeric rank of a ministry type (VISITOR=0); -1 when unset."""
    if ministry_type is None:
        return -1
    return MINISTRY_HIERARCHY.index(MinistryType(ministry_type))


def compare_ministry_types(
    first: MinistryType | str | None,
    second: MinistryType | str | None,
) -> int:
    """Negative if ``first`` ranks higher, positive if ``second`` does, else 0."""
    return rank_of(second) - rank_of(first)


def is_equal_or_higher(
    ministry_type: MinistryType | str | None,
    required: MinistryType | str,
) -> bool:
    if ministry_type is None:
        return False
    return rank_of(ministry_type) >= rank_of(required)


def label_of(ministry_type: MinistryType | str | None) -> str:
    if ministry_type is None:
        return MINISTRY_LABELS[MinistryType.MEMBER]
    return MINISTRY_LABELS[MinistryType(ministry_type)]


# ════════════════════════════════════════════════════════════════
# Tree nodes
# ════════════════════════════════════════════════════════════════


def _member_id(item: Any) -> Any:
    """Accept ``5``, ``{"id": 5}``, ``{"memberId": 5}`` or ``{"member": {"id": 5}}``."""
    if isinstance(item, dict):
        if "member" in item and isinstance(item["member"], dict):
            return item["member"].get("id")
        if "memberId" in item:
            return item["memberId"]
        return item.get("id")
    return item


class _HierarchyModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class Congregacao(_HierarchyModel):
    """
    A congregation, root of the tree.

    At most one congregation per scope carries ``is_principal`` (the
    citywide seat); its president and vice president hold authority over
    every node in the snapshot.
    """

    level: ClassVar[HierarchyLevel] = HierarchyLevel.CONGREGACAO

    id: int
    name: str = ""
    is_principal: bool = False
    pastor_governo_member_id: int | None = None
    vice_presidente_member_id: int | None = None
    kids_leader_member_id: int | None = None

    @property
    def authority_ids(self) -> frozenset[int]:
        """Members holding pastoral authority over this congregation."""
        return frozenset(
            member_id
            for member_id in (self.pastor_governo_member_id, self.vice_presidente_member_id)
            if member_id is not None
        )


class Rede(_HierarchyModel):
    """A network under a congregation. ``is_kids`` marks the Kids ministry."""

    level: ClassVar[HierarchyLevel] = HierarchyLevel.REDE

    id: int
    name: str = ""
    congregacao_id: int
    pastor_member_id: int | None = None
    is_kids: bool = False


class Discipulado(_HierarchyModel):
    """A discipleship under a network, led by a discipulador."""

    level: ClassVar[HierarchyLevel] = HierarchyLevel.DISCIPULADO

    id: int
    name: str = ""
    rede_id: int
    discipulador_member_id: int | None = None
    disciples: frozenset[int] = Field(default_factory=frozenset)

    @field_validator("disciples", mode="before")
    @classmethod
    def _coerce_disciples(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(_member_id(item) for item in value)
        return value


class Celula(_HierarchyModel):
    """A cell, the leaf small group of the tree."""

    level: ClassVar[HierarchyLevel] = HierarchyLevel.CELULA

    id: int
    name: str = ""
    discipulado_id: int
    leader_member_id: int | None = None
    host_member_id: int | None = None
    leaders_in_training: frozenset[int] = Field(default_factory=frozenset)

    # Scheduling, opaque to the engine
    weekday: int | None = None
    time: str | None = None

    @field_validator("leaders_in_training", mode="before")
    @classmethod
    def _coerce_leaders_in_training(cls, value: Any) -> Any:
        if value is None:
            return frozenset()
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(_member_id(item) for item in value)
        return value


Node = Congregacao | Rede | Discipulado | Celula

NODE_TYPES: tuple[type, ...] = (Congregacao, Rede, Discipulado, Celula)


def level_of(node: Node) -> HierarchyLevel:
    """Tree level of a node; raises ``TypeError`` for anything else."""
    if not isinstance(node, NODE_TYPES):
        raise TypeError(f"Not a hierarchy node: {type(node).__name__}")
    return node.level


# ════════════════════════════════════════════════════════════════
# Members and actors
# ════════════════════════════════════════════════════════════════


class MemberProfile(_HierarchyModel):
    """The slice of a member record the integrity checks need."""

    id: int
    name: str = ""
    gender: Gender | None = None
    ministry_type: MinistryType | None = None


class ActorContext(_HierarchyModel):
    """
    The acting member, as issued by the authentication collaborator.

    The optional ``*_ids`` allowlists are precomputed scopes; when present
    they grant read-only visibility of the listed nodes.
    """

    id: int
    is_admin: bool = False
    ministry_type: MinistryType | None = None
    gender: Gender | None = None
    congregacao_ids: frozenset[int] | None = None
    rede_ids: frozenset[int] | None = None
    discipulado_ids: frozenset[int] | None = None
    celula_ids: frozenset[int] | None = None

    def allowlist_for(self, level: HierarchyLevel) -> frozenset[int] | None:
        return {
            HierarchyLevel.CONGREGACAO: self.congregacao_ids,
            HierarchyLevel.REDE: self.rede_ids,
            HierarchyLevel.DISCIPULADO: self.discipulado_ids,
            HierarchyLevel.CELULA: self.celula_ids,
        }[level]

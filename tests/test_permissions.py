"""
Tests for the Permission Resolver.

Validates:
- Admin supremacy and the citywide override
- Level-specific authority and field scoping
- Self-leader read-only access
- Malformed requests
"""

from __future__ import annotations

import pytest

from redeguard.governance.permissions import (
    APPLICABLE_FIELDS,
    DecisionReason,
    Operation,
    PermissionEngine,
)
from redeguard.hierarchy.schema import ActorContext, Celula, EditableField, HierarchyLevel
from redeguard.hierarchy.snapshot import HierarchySnapshot

BASIC_OPERATIONS = (Operation.VIEW, Operation.CREATE, Operation.EDIT, Operation.DELETE)


def all_nodes(snapshot):
    return [*snapshot.congregacoes, *snapshot.redes, *snapshot.discipulados, *snapshot.celulas]


def all_requests(snapshot):
    """Every (node, operation, field) combination valid for the snapshot."""
    for node in all_nodes(snapshot):
        for operation in BASIC_OPERATIONS:
            yield node, operation, None
        if isinstance(node, Celula):
            yield node, Operation.MULTIPLY, None
        for field in APPLICABLE_FIELDS[node.level]:
            yield node, Operation.EDIT_FIELD, field


class TestOverrides:
    """Rules 1 and 2: administrators and the principal congregation's presidency."""

    def setup_method(self):
        self.admin = ActorContext(id=99, is_admin=True)

    def test_admin_supremacy(self, snapshot):
        engine = PermissionEngine(snapshot)
        for node, operation, field in all_requests(snapshot):
            decision = engine.resolve(self.admin, node, operation, field)
            assert decision.allow, (node, operation, field)
            assert decision.reason == DecisionReason.ADMIN

    @pytest.mark.parametrize("member_id", [1, 5])
    def test_city_wide_override(self, snapshot, member_id):
        engine = PermissionEngine(snapshot)
        actor = ActorContext(id=member_id)
        for node, operation, field in all_requests(snapshot):
            decision = engine.resolve(actor, node, operation, field)
            assert decision.allow, (node, operation, field)
            assert decision.reason == DecisionReason.CITY_WIDE_OVERRIDE

    def test_city_wide_override_may_designate_principal(self, snapshot):
        engine = PermissionEngine(snapshot)
        decision = engine.resolve(
            ActorContext(id=1),
            snapshot.get_congregacao(2),
            Operation.EDIT_FIELD,
            EditableField.IS_PRINCIPAL,
        )
        assert decision.allow

    def test_ambiguous_principal_grants_nothing(self, payload):
        payload["congregacoes"][1]["isPrincipal"] = True
        snap = HierarchySnapshot.from_payload(payload)
        engine = PermissionEngine(snap)
        assert engine.principal is None
        decision = engine.resolve(ActorContext(id=1), snap.get_celula(2100), Operation.EDIT)
        assert not decision.allow
        assert decision.reason == DecisionReason.NO_AUTHORITY

    def test_ministry_type_alone_grants_nothing(self, snapshot):
        """A PRESIDENT_PASTOR outside the principal seat has no citywide rights."""
        engine = PermissionEngine(snapshot)
        actor = ActorContext(id=50, ministry_type="PRESIDENT_PASTOR")
        assert not engine.can(actor, snapshot.get_celula(1000), Operation.EDIT)


class TestCongregacaoRules:

    def setup_method(self):
        self.pastor_b = ActorContext(id=6)

    @pytest.mark.parametrize("operation", BASIC_OPERATIONS)
    def test_own_pastor_full_control(self, snapshot, operation):
        decision = PermissionEngine(snapshot).resolve(
            self.pastor_b, snapshot.get_congregacao(2), operation
        )
        assert decision.allow
        assert decision.reason == DecisionReason.DIRECT_AUTHORITY
        assert decision.level == HierarchyLevel.CONGREGACAO

    def test_own_pastor_fields(self, snapshot):
        engine = PermissionEngine(snapshot)
        fields = engine.field_permissions(self.pastor_b, snapshot.get_congregacao(2))
        assert fields[EditableField.LEADER]
        assert fields[EditableField.KIDS_LEADER]
        assert not fields[EditableField.IS_PRINCIPAL]

    def test_other_congregation(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            self.pastor_b, snapshot.get_congregacao(1), Operation.VIEW
        )
        assert not decision.allow
        assert decision.reason == DecisionReason.NO_AUTHORITY


class TestRedeRules:

    def test_congregation_pastor_moves_network(self, snapshot):
        engine = PermissionEngine(snapshot)
        rede = snapshot.get_rede(21)
        actor = ActorContext(id=6)
        assert engine.can(actor, rede, Operation.DELETE)
        assert engine.can(actor, rede, Operation.EDIT_FIELD, EditableField.CONGREGACAO)
        assert engine.can(actor, rede, Operation.EDIT_FIELD, EditableField.IS_KIDS)

    def test_network_pastor(self, snapshot):
        engine = PermissionEngine(snapshot)
        rede = snapshot.get_rede(21)
        actor = ActorContext(id=15)
        assert engine.can(actor, rede, Operation.VIEW)
        assert engine.can(actor, rede, Operation.EDIT)
        assert engine.can(actor, rede, Operation.CREATE)
        assert engine.can(actor, rede, Operation.EDIT_FIELD, EditableField.LEADER)
        assert not engine.can(actor, rede, Operation.DELETE)
        assert not engine.can(actor, rede, Operation.EDIT_FIELD, EditableField.IS_KIDS)

    def test_network_pastor_never_moves_network(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=15),
            snapshot.get_rede(21),
            Operation.EDIT_FIELD,
            EditableField.CONGREGACAO,
        )
        assert not decision.allow
        assert decision.reason == DecisionReason.DIRECT_AUTHORITY
        assert decision.level == HierarchyLevel.REDE


class TestDiscipuladoRules:

    def test_congregation_pastor_reassigns_everything(self, snapshot):
        engine = PermissionEngine(snapshot)
        discipulado = snapshot.get_discipulado(210)
        actor = ActorContext(id=6)
        assert engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.REDE)
        assert engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.CONGREGACAO)

    def test_network_pastor(self, snapshot):
        engine = PermissionEngine(snapshot)
        discipulado = snapshot.get_discipulado(210)
        actor = ActorContext(id=15)
        assert engine.can(actor, discipulado, Operation.EDIT)
        assert engine.can(actor, discipulado, Operation.DELETE)
        assert engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.LEADER)
        assert not engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.REDE)
        assert not engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.CONGREGACAO)

    def test_scenario_network_pastor_cannot_move_discipleship(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=2),
            snapshot.get_discipulado(100),
            Operation.EDIT_FIELD,
            EditableField.REDE,
        )
        assert not decision.allow

    def test_non_kids_discipler_has_no_self_edit(self, snapshot):
        engine = PermissionEngine(snapshot)
        discipulado = snapshot.get_discipulado(210)
        actor = ActorContext(id=16)
        assert engine.can(actor, discipulado, Operation.VIEW)
        assert not engine.can(actor, discipulado, Operation.EDIT)
        assert not engine.can(actor, discipulado, Operation.DELETE)
        assert not engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.DISCIPLES)

    def test_kids_discipler_manages_disciples_only(self, snapshot):
        engine = PermissionEngine(snapshot)
        discipulado = snapshot.get_discipulado(200)
        actor = ActorContext(id=9)
        assert engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.DISCIPLES)
        assert not engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.LEADER)
        assert not engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.REDE)
        assert not engine.can(actor, discipulado, Operation.EDIT_FIELD, EditableField.CONGREGACAO)
        assert not engine.can(actor, discipulado, Operation.EDIT)
        assert not engine.can(actor, discipulado, Operation.DELETE)

    def test_discipler_may_create_cells(self, snapshot):
        engine = PermissionEngine(snapshot)
        assert engine.can(ActorContext(id=16), snapshot.get_discipulado(210), Operation.CREATE)


class TestCelulaRules:

    def test_scenario_discipler_may_delete_cell(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=3), snapshot.get_celula(1000), Operation.DELETE
        )
        assert decision.allow
        assert decision.reason == DecisionReason.DIRECT_AUTHORITY
        assert decision.level == HierarchyLevel.DISCIPULADO

    def test_discipler_field_scope(self, snapshot):
        fields = PermissionEngine(snapshot).field_permissions(
            ActorContext(id=3), snapshot.get_celula(1000)
        )
        assert fields[EditableField.LEADER]
        assert fields[EditableField.HOST]
        assert fields[EditableField.LEADERS_IN_TRAINING]
        assert not fields[EditableField.DISCIPULADO]
        assert not fields[EditableField.REDE]
        assert not fields[EditableField.CONGREGACAO]

    def test_network_pastor_field_scope(self, snapshot):
        fields = PermissionEngine(snapshot).field_permissions(
            ActorContext(id=15), snapshot.get_celula(2100)
        )
        assert fields[EditableField.DISCIPULADO]
        assert fields[EditableField.LEADER]
        assert not fields[EditableField.REDE]
        assert not fields[EditableField.CONGREGACAO]

    def test_congregation_pastor_field_scope(self, snapshot):
        fields = PermissionEngine(snapshot).field_permissions(
            ActorContext(id=6), snapshot.get_celula(2100)
        )
        assert fields[EditableField.REDE]
        assert fields[EditableField.DISCIPULADO]
        assert fields[EditableField.LEADER]
        assert not fields[EditableField.CONGREGACAO]

    def test_cell_congregation_reserved_for_city_wide_seat(self, snapshot):
        engine = PermissionEngine(snapshot)
        celula = snapshot.get_celula(2100)
        decision = engine.resolve(
            ActorContext(id=6), celula, Operation.EDIT_FIELD, EditableField.CONGREGACAO
        )
        assert not decision.allow
        assert decision.level == HierarchyLevel.CONGREGACAO
        assert engine.can(
            ActorContext(id=5), celula, Operation.EDIT_FIELD, EditableField.CONGREGACAO
        )

    def test_scenario_self_leader_is_read_only(self, snapshot):
        engine = PermissionEngine(snapshot)
        celula = snapshot.get_celula(1000)
        actor = ActorContext(id=4)

        edit = engine.resolve(actor, celula, Operation.EDIT)
        assert not edit.allow
        assert edit.reason == DecisionReason.SELF_LEADER_READ_ONLY

        view = engine.resolve(actor, celula, Operation.VIEW)
        assert view.allow
        assert view.reason == DecisionReason.SELF_LEADER_READ_ONLY

        assert not engine.can(actor, celula, Operation.DELETE)
        assert not engine.can(actor, celula, Operation.EDIT_FIELD, EditableField.LEADER)
        assert not engine.can(actor, celula, Operation.EDIT_FIELD, EditableField.HOST)

    def test_leader_of_another_cell(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=4), snapshot.get_celula(2100), Operation.VIEW
        )
        assert not decision.allow
        assert decision.reason == DecisionReason.NO_AUTHORITY

    def test_highest_role_wins(self, snapshot):
        """The discipuladora of DK also leads CK2; her discipleship role governs."""
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=9), snapshot.get_celula(2001), Operation.EDIT
        )
        assert decision.allow
        assert decision.level == HierarchyLevel.DISCIPULADO

    def test_monotonic_restriction_by_depth(self, snapshot):
        engine = PermissionEngine(snapshot)
        for member_id in (2, 3, 8, 9, 15, 16):
            actor = ActorContext(id=member_id)
            for celula in snapshot.celulas:
                for field in (EditableField.REDE, EditableField.CONGREGACAO):
                    assert not engine.can(actor, celula, Operation.EDIT_FIELD, field)

    def test_dangling_cell_degrades_to_no_authority(self, snapshot):
        orphan = Celula(id=5000, discipulado_id=999, leader_member_id=4)
        engine = PermissionEngine(snapshot)
        assert not engine.can(ActorContext(id=3), orphan, Operation.EDIT)
        assert engine.resolve(ActorContext(id=4), orphan, Operation.VIEW).allow


class TestMultiply:
    """Splitting a cell follows Delete authority; the leader is excluded."""

    @pytest.mark.parametrize("member_id", [3, 2, 1])
    def test_authorities_may_multiply(self, snapshot, member_id):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=member_id), snapshot.get_celula(1000), Operation.MULTIPLY
        )
        assert decision.allow

    def test_own_leader_may_not_multiply(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=4), snapshot.get_celula(1000), Operation.MULTIPLY
        )
        assert not decision.allow
        assert decision.reason == DecisionReason.SELF_LEADER_READ_ONLY

    def test_outsider_may_not_multiply(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=16), snapshot.get_celula(1000), Operation.MULTIPLY
        )
        assert decision.reason == DecisionReason.NO_AUTHORITY

    def test_only_cells_multiply(self, snapshot):
        with pytest.raises(ValueError):
            PermissionEngine(snapshot).resolve(
                ActorContext(id=99, is_admin=True), snapshot.get_discipulado(100), Operation.MULTIPLY
            )


class TestAllowlists:

    def test_precomputed_scope_grants_view_only(self, snapshot):
        engine = PermissionEngine(snapshot)
        actor = ActorContext(id=19, celula_ids=frozenset({2100}))
        celula = snapshot.get_celula(2100)
        view = engine.resolve(actor, celula, Operation.VIEW)
        assert view.allow
        assert view.reason == DecisionReason.DIRECT_AUTHORITY
        assert not engine.can(actor, celula, Operation.EDIT)
        assert not engine.can(actor, snapshot.get_celula(2101), Operation.VIEW)


class TestMalformedRequests:

    def test_edit_field_requires_field(self, snapshot):
        with pytest.raises(ValueError):
            PermissionEngine(snapshot).resolve(
                ActorContext(id=99, is_admin=True), snapshot.get_celula(1000), Operation.EDIT_FIELD
            )

    def test_inapplicable_field(self, snapshot):
        with pytest.raises(ValueError):
            PermissionEngine(snapshot).resolve(
                ActorContext(id=99, is_admin=True),
                snapshot.get_rede(10),
                Operation.EDIT_FIELD,
                EditableField.DISCIPULADO,
            )

    def test_field_on_other_operation(self, snapshot):
        with pytest.raises(ValueError):
            PermissionEngine(snapshot).resolve(
                ActorContext(id=1), snapshot.get_rede(10), Operation.EDIT, EditableField.LEADER
            )

    def test_missing_actor(self, snapshot):
        with pytest.raises(ValueError):
            PermissionEngine(snapshot).resolve(None, snapshot.get_rede(10), Operation.VIEW)

    def test_not_a_node(self, snapshot):
        with pytest.raises(TypeError):
            PermissionEngine(snapshot).resolve(ActorContext(id=1), {"id": 10}, Operation.VIEW)

    def test_string_operation_and_field(self, snapshot):
        decision = PermissionEngine(snapshot).resolve(
            ActorContext(id=3), snapshot.get_celula(1000), "edit_field", "host"
        )
        assert decision.allow
        assert decision.field == EditableField.HOST

"""
Shared snapshot fixtures.

Tree used throughout the suite (ids in brackets):

    Congregação A [1] principal, pastor M1 [1], vice [5]
      Rede R1 [10] pastor M2 [2]
        Discipulado D1 [100] discipulador M3 [3]
          Célula C1 [1000] leader M4 [4]
    Congregação B [2] pastor [6], kids leader [7]
      Rede Kids RK [20] pastora [8]
        Discipulado DK [200] discipuladora [9], disciples 11-14
          Célula CK1 [2000] leader [11], trainee [12]
          Célula CK2 [2001] leader [9]
      Rede RB [21] pastor [15]
        Discipulado DB [210] discipulador [16]
          Célula CB1 [2100] leader [17], trainee [18]
          Célula CB2 [2101] no leader
"""

from __future__ import annotations

import copy

import pytest

from redeguard.engine import HierarchyEngine
from redeguard.hierarchy.snapshot import HierarchySnapshot

SNAPSHOT_PAYLOAD = {
    "congregacoes": [
        {
            "id": 1,
            "name": "Congregação A",
            "isPrincipal": True,
            "pastorGovernoMemberId": 1,
            "vicePresidenteMemberId": 5,
        },
        {
            "id": 2,
            "name": "Congregação B",
            "isPrincipal": False,
            "pastorGovernoMemberId": 6,
            "kidsLeaderMemberId": 7,
        },
    ],
    "redes": [
        {"id": 10, "name": "R1", "congregacaoId": 1, "pastorMemberId": 2, "isKids": False},
        {"id": 20, "name": "Kids", "congregacaoId": 2, "pastorMemberId": 8, "isKids": True},
        {"id": 21, "name": "RB", "congregacaoId": 2, "pastorMemberId": 15, "isKids": False},
    ],
    "discipulados": [
        {"id": 100, "name": "D1", "redeId": 10, "discipuladorMemberId": 3},
        {
            "id": 200,
            "name": "DK",
            "redeId": 20,
            "discipuladorMemberId": 9,
            "disciples": [{"id": 11}, {"id": 12}, {"id": 13}, {"id": 14}],
        },
        {"id": 210, "name": "DB", "redeId": 21, "discipuladorMemberId": 16},
    ],
    "celulas": [
        {"id": 1000, "name": "C1", "discipuladoId": 100, "leaderMemberId": 4},
        {
            "id": 2000,
            "name": "CK1",
            "discipuladoId": 200,
            "leaderMemberId": 11,
            "leadersInTraining": [{"member": {"id": 12, "name": "Ana"}}],
        },
        {"id": 2001, "name": "CK2", "discipuladoId": 200, "leaderMemberId": 9},
        {
            "id": 2100,
            "name": "CB1",
            "discipuladoId": 210,
            "leaderMemberId": 17,
            "hostMemberId": 13,
            "leadersInTraining": [{"member": {"id": 18}}],
        },
        {"id": 2101, "name": "CB2", "discipuladoId": 210},
    ],
    "members": [
        {"id": 1, "name": "M1", "gender": "MALE", "ministryType": "PRESIDENT_PASTOR"},
        {"id": 2, "name": "M2", "gender": "MALE", "ministryType": "PASTOR"},
        {"id": 3, "name": "M3", "gender": "MALE", "ministryType": "DISCIPULADOR"},
        {"id": 4, "name": "M4", "gender": "MALE", "ministryType": "LEADER"},
        {"id": 5, "name": "Vice A", "gender": "FEMALE", "ministryType": "PASTOR"},
        {"id": 6, "name": "Pastor B", "gender": "MALE", "ministryType": "PASTOR"},
        {"id": 7, "name": "Kids Leader B", "gender": "FEMALE", "ministryType": "PASTOR"},
        {"id": 8, "name": "Pastora Kids", "gender": "FEMALE", "ministryType": "PASTOR"},
        {"id": 9, "name": "Discipuladora", "gender": "FEMALE", "ministryType": "DISCIPULADOR"},
        {"id": 11, "name": "Líder CK1", "gender": "FEMALE", "ministryType": "LEADER"},
        {"id": 12, "name": "Ana", "gender": "FEMALE", "ministryType": "LEADER_IN_TRAINING"},
        {"id": 13, "name": "Bruno", "gender": "MALE", "ministryType": "MEMBER"},
        {"id": 14, "name": "Carla", "gender": "FEMALE", "ministryType": "MEMBER"},
        {"id": 15, "name": "Pastor RB", "gender": "MALE", "ministryType": "PASTOR"},
        {"id": 16, "name": "Discipulador DB", "gender": "MALE", "ministryType": "DISCIPULADOR"},
        {"id": 17, "name": "Líder CB1", "gender": "MALE", "ministryType": "LEADER"},
        {"id": 18, "name": "Diego", "gender": "MALE", "ministryType": "LEADER_IN_TRAINING"},
        {"id": 19, "name": "Elisa", "gender": "FEMALE", "ministryType": "MEMBER"},
    ],
}


@pytest.fixture()
def payload() -> dict:
    """A fresh, mutable copy of the collaborator payload."""
    return copy.deepcopy(SNAPSHOT_PAYLOAD)


@pytest.fixture()
def snapshot(payload: dict) -> HierarchySnapshot:
    return HierarchySnapshot.from_payload(payload)


@pytest.fixture()
def engine(snapshot: HierarchySnapshot) -> HierarchyEngine:
    return HierarchyEngine(snapshot)

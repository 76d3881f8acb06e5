from __future__ import annotations

import pytest
from neatevo.genes import MAX_NODES, ConnectionGene, NodeGene


def test_node_identity_uses_innovation_number_only() -> None:
    a = NodeGene(innovation_number=3, x=0.5, y=0.2, bias=0.1)
    b = NodeGene(innovation_number=3, x=0.7, y=0.9, bias=-2.0)
    c = NodeGene(innovation_number=4, x=0.5, y=0.2, bias=0.1)

    assert a == b
    assert hash(a) == hash(b)
    assert a != c


def test_node_layer_flags() -> None:
    assert NodeGene(1, x=0.01, y=0.5).is_input
    assert NodeGene(2, x=0.99, y=0.5).is_output
    hidden = NodeGene(3, x=0.5, y=0.5)
    assert not hidden.is_input
    assert not hidden.is_output


def test_node_rejects_positions_outside_unit_square() -> None:
    with pytest.raises(ValueError):
        NodeGene(1, x=1.5, y=0.5)
    with pytest.raises(ValueError):
        NodeGene(1, x=0.5, y=-0.1)


def test_node_copy_is_detached() -> None:
    node = NodeGene(5, x=0.5, y=0.5, bias=0.3)
    clone = node.copy(bias=0.0)
    clone.bias = 1.0

    assert node.bias == pytest.approx(0.3)
    assert clone == node


def test_connection_identity_ignores_weight_and_enabled() -> None:
    a = ConnectionGene(1, from_id=1, to_id=4, weight=0.5)
    b = ConnectionGene(9, from_id=1, to_id=4, weight=-1.0, enabled=False)

    assert a == b
    assert hash(a) == 1 * MAX_NODES + 4
    assert a != ConnectionGene(1, from_id=4, to_id=1)


def test_connection_copy_preserves_fields() -> None:
    original = ConnectionGene(2, from_id=1, to_id=3, weight=0.25, replace_index=7)
    clone = original.copy(enabled=False)

    assert clone.innovation_number == 2
    assert clone.weight == pytest.approx(0.25)
    assert clone.replace_index == 7
    assert clone.enabled is False
    assert original.enabled is True


def test_connection_rejects_non_finite_weight() -> None:
    with pytest.raises(ValueError):
        ConnectionGene(1, from_id=1, to_id=2, weight=float("nan"))

"""Tests for the node store and structural interning."""

from __future__ import annotations

import pytest

from csd_graph import (
    Constant,
    EffectClass,
    Graph,
    GraphScopeError,
    NodeRef,
    Rate,
    ShapeMismatchError,
    TupleValue,
)
from csd_graph.graph import lift, structural_key


class TestInterning:
    def test_identical_pure_nodes_share_a_ref(self, graph: Graph) -> None:
        a = graph.intern("add", [1.0, 2.0])
        b = graph.intern("add", [1.0, 2.0])
        assert a == b
        assert len(graph) == 1

    def test_operand_order_matters_for_storage(self, graph: Graph) -> None:
        a = graph.intern("sub", [1.0, 2.0])
        b = graph.intern("sub", [2.0, 1.0])
        assert a != b

    def test_rate_is_part_of_identity(self, graph: Graph) -> None:
        a = graph.intern("add", [1.0, 2.0])
        k = graph.intern("add", [1.0, 2.0], Rate.CONTROL)
        assert a != k
        assert a.rate is Rate.INIT
        assert k.rate is Rate.CONTROL

    def test_literals_lifted_to_constants(self, graph: Graph) -> None:
        ref = graph.intern("mul", [3, "x"])
        assert ref.node.operands == (Constant(value=3), Constant(value="x"))

    def test_node_operands_stored_by_index(
        self, graph: Graph, control_node: NodeRef
    ) -> None:
        ref = graph.intern("mul", [control_node, 0.5])
        assert ref.node.operands[0] == control_node.index

    def test_constant_leaf(self, graph: Graph) -> None:
        one = graph.constant(1.0)
        assert one.op == "const"
        assert one.rate is Rate.INIT
        assert graph.constant(1.0) == one

    def test_effectful_nodes_never_collapse(self, graph: Graph) -> None:
        a = graph.intern("random", [0.0, 1.0], effect=EffectClass.EFFECTFUL, token=1)
        b = graph.intern("random", [0.0, 1.0], effect=EffectClass.EFFECTFUL, token=2)
        assert a != b
        assert len(graph) == 2

    def test_structural_key_includes_forced_flag(self, graph: Graph) -> None:
        a = graph.intern("upsamp", [1.0], output_rate=Rate.AUDIO)
        b = graph.intern("upsamp", [1.0], output_rate=Rate.AUDIO, forced=True)
        assert a != b
        assert structural_key(a.node) != structural_key(b.node)


class TestRateInference:
    def test_no_operands_is_init(self, graph: Graph) -> None:
        assert graph.intern("now", []).rate is Rate.INIT

    def test_fastest_operand_wins(
        self, graph: Graph, audio_node: NodeRef, control_node: NodeRef
    ) -> None:
        assert graph.intern("mul", [control_node, 2.0]).rate is Rate.CONTROL
        assert graph.intern("mul", [audio_node, control_node]).rate is Rate.AUDIO

    def test_output_rate_overrides_inference(self, graph: Graph) -> None:
        assert graph.intern("phasor", [440.0], output_rate=Rate.AUDIO).rate is Rate.AUDIO


class TestScope:
    def test_foreign_operand_rejected(self, graph: Graph) -> None:
        other = Graph("other")
        foreign = other.constant(1.0)
        graph.constant(2.0)
        with pytest.raises(GraphScopeError, match="belongs to graph 'other'") as exc:
            graph.intern("add", [foreign, 1.0])
        assert exc.value.kind == "graph_scope"
        assert len(graph) == 1

    def test_refs_compare_by_graph(self) -> None:
        a = Graph("a").constant(1.0)
        b = Graph("b").constant(1.0)
        assert a.index == b.index
        assert a != b
        assert len({a, b}) == 2

    def test_ref_out_of_range(self, graph: Graph) -> None:
        with pytest.raises(GraphScopeError):
            graph.ref(3)

    def test_sealed_graph_rejects_new_nodes(self, graph: Graph) -> None:
        graph.constant(1.0)
        graph.seal()
        with pytest.raises(GraphScopeError, match="already been rendered"):
            graph.constant(2.0)

    def test_requirement_length_mismatch(self, graph: Graph) -> None:
        with pytest.raises(ShapeMismatchError):
            graph.intern("add", [1.0], requirements=[None, None])
        assert len(graph) == 0


class TestConstantValued:
    def test_literal_subgraph(self, graph: Graph) -> None:
        s = graph.intern("add", [graph.constant(1.0), 2.0])
        assert graph.is_constant_valued(s)
        assert graph.is_constant_valued(Constant(value=3.0))

    def test_coerced_literal_arithmetic(self, graph: Graph) -> None:
        up = graph.intern("upsamp", [graph.constant(1.0)], output_rate=Rate.AUDIO)
        assert graph.is_constant_valued(graph.intern("mul", [up, 2.0]))

    def test_live_generator_is_not_constant(self, graph: Graph, audio_node: NodeRef) -> None:
        assert not graph.is_constant_valued(audio_node)
        assert not graph.is_constant_valued(graph.intern("mul", [audio_node, 2.0]))

    def test_effectful_node_is_not_constant(self, graph: Graph) -> None:
        r = graph.intern("random", [0.0, 1.0], effect=EffectClass.EFFECTFUL, token=1)
        s = graph.intern("mul", [r, 2.0])
        assert not graph.is_constant_valued(r)
        assert not graph.is_constant_valued(s)


class TestTupleValue:
    def test_lifts_literals(self, graph: Graph) -> None:
        one = graph.constant(1.0)
        t = TupleValue(one, 2.0)
        assert len(t) == 2
        assert t.arity == 2
        assert t[0] == one
        assert t[1] == Constant(value=2.0)

    def test_slice_is_tuple(self, graph: Graph) -> None:
        t = TupleValue(1.0, 2.0, 3.0)
        assert isinstance(t[1:], TupleValue)
        assert len(t[1:]) == 2

    def test_rejects_nesting(self) -> None:
        with pytest.raises(ShapeMismatchError):
            TupleValue(TupleValue(1.0), 2.0)  # type: ignore[arg-type]

    def test_equality_and_hash(self) -> None:
        assert TupleValue(1.0, 2.0) == TupleValue(1.0, 2.0)
        assert hash(TupleValue(1.0, 2.0)) == hash(TupleValue(1.0, 2.0))
        assert TupleValue(1.0, 2.0) != TupleValue(2.0, 1.0)


class TestLift:
    def test_passes_refs_through(self, graph: Graph) -> None:
        one = graph.constant(1.0)
        assert lift(one) is one

    def test_booleans_rejected(self) -> None:
        with pytest.raises(ShapeMismatchError):
            lift(True)

    def test_other_objects_rejected(self) -> None:
        with pytest.raises(ShapeMismatchError):
            lift([1.0])  # type: ignore[arg-type]

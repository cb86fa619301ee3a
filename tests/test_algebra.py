"""Tests for operator overloading and the binary dispatch table."""

from __future__ import annotations

from collections.abc import Callable

import pytest

from csd_graph import (
    Constant,
    Context,
    Effect,
    GraphScopeError,
    NodeRef,
    Rate,
    Shape,
    ShapeMismatchError,
    TupleValue,
    binary,
    mix,
)
from csd_graph.algebra import _BINARY_DISPATCH, maximum, minimum


class TestScalarOperators:
    def test_add_nodes(self, ctx: Context) -> None:
        a, b = ctx.const(1.0), ctx.const(2.0)
        s = a + b
        assert isinstance(s, NodeRef)
        assert s.op == "add"
        assert s.node.operands == (a.index, b.index)

    @pytest.mark.parametrize(
        "build, op",
        [
            (lambda x: x + 1.0, "add"),
            (lambda x: x - 1.0, "sub"),
            (lambda x: x * 1.0, "mul"),
            (lambda x: x / 2.0, "div"),
            (lambda x: x % 2.0, "mod"),
            (lambda x: x**2.0, "pow"),
            (lambda x: -x, "neg"),
            (lambda x: abs(x), "abs"),
        ],
    )
    def test_operator_names(
        self, ctx: Context, build: Callable[[NodeRef], NodeRef], op: str
    ) -> None:
        assert build(ctx.const(3.0)).op == op

    def test_reflected_keeps_operand_order(self, ctx: Context) -> None:
        x = ctx.const(3.0)
        r = 2.0 - x
        assert r.op == "sub"
        assert r.node.operands == (Constant(value=2.0), x.index)

    def test_same_expression_interned(self, ctx: Context) -> None:
        x = ctx.const(3.0)
        assert x * 0.5 == x * 0.5
        assert len(ctx.graph) == 2

    def test_rate_follows_operands(self, ctx: Context) -> None:
        k = ctx.kr(ctx.const(1.0))
        assert (k * 2.0).rate is Rate.CONTROL
        phasor = ctx.graph.intern("phasor", [440.0], output_rate=Rate.AUDIO)
        assert (k * phasor).rate is Rate.AUDIO

    def test_min_max(self, ctx: Context) -> None:
        x = ctx.const(3.0)
        assert minimum(x, 1.0).op == "min"
        assert maximum(x, 1.0).op == "max"

    def test_literal_only_arithmetic(self) -> None:
        with pytest.raises(GraphScopeError, match="literal-only"):
            binary("add", 1.0, 2.0)

    def test_mixed_graphs(self, ctx: Context) -> None:
        other = Context("other")
        with pytest.raises(GraphScopeError):
            ctx.const(1.0) + other.const(1.0)


class TestTupleOperators:
    def test_scalar_broadcast(self, ctx: Context) -> None:
        stereo = ctx.tuple(ctx.const(1.0), ctx.const(2.0))
        scaled = stereo * 0.5
        assert isinstance(scaled, TupleValue)
        assert [v.op for v in scaled] == ["mul", "mul"]

    def test_scalar_on_left(self, ctx: Context) -> None:
        stereo = ctx.tuple(ctx.const(1.0), ctx.const(2.0))
        shifted = 1.0 - stereo
        assert all(v.node.operands[0] == Constant(value=1.0) for v in shifted)

    def test_zip(self, ctx: Context) -> None:
        left = ctx.tuple(ctx.const(1.0), ctx.const(2.0))
        right = ctx.tuple(ctx.const(3.0), ctx.const(4.0))
        summed = left + right
        assert len(summed) == 2
        assert summed[0].node.operands == (left[0].index, right[0].index)

    def test_unequal_arity(self, ctx: Context) -> None:
        left = ctx.tuple(ctx.const(1.0), ctx.const(2.0))
        right = ctx.tuple(ctx.const(3.0), ctx.const(4.0), ctx.const(5.0))
        with pytest.raises(ShapeMismatchError, match="equal arity"):
            left + right

    def test_unary(self, ctx: Context) -> None:
        negated = -ctx.tuple(ctx.const(1.0), ctx.const(2.0))
        assert [v.op for v in negated] == ["neg", "neg"]


class TestEffectOperators:
    def test_effect_plus_scalar(self, ctx: Context) -> None:
        r = ctx.random(0.0, 1.0)
        s = r + 1.0
        assert isinstance(s, Effect)
        assert s.value.op == "add"
        assert s.tokens == r.tokens

    def test_tokens_merged_in_order(self, ctx: Context) -> None:
        a = ctx.random(0.0, 1.0)
        b = ctx.random(0.0, 1.0)
        s = b + a
        assert [t.serial for t in s.tokens] == [1, 2]

    def test_effect_tuple_with_tuple(self, ctx: Context) -> None:
        r = ctx.random(0.0, 1.0)
        wrapped = Effect(ctx.tuple(r.value, r.value), r.tokens)
        result = wrapped * ctx.tuple(ctx.const(1.0), ctx.const(2.0))
        assert isinstance(result, Effect)
        assert isinstance(result.value, TupleValue)
        assert len(result.value) == 2

    def test_unary_on_effect(self, ctx: Context) -> None:
        r = ctx.random(0.0, 1.0)
        n = -r
        assert isinstance(n, Effect)
        assert n.value.op == "neg"


class TestDispatchTable:
    def test_every_shape_pair_has_a_handler(self) -> None:
        assert set(_BINARY_DISPATCH) == {(a, b) for a in Shape for b in Shape}

    def test_mix(self, ctx: Context) -> None:
        total = mix([ctx.const(1.0), ctx.const(2.0), ctx.const(3.0)])
        assert total.op == "add"
        assert ctx.graph.node(total.node.operands[0]).op == "add"

    def test_mix_empty(self) -> None:
        with pytest.raises(ShapeMismatchError):
            mix([])

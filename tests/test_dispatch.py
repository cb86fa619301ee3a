"""Tests for shape-driven transform application."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from csd_graph import (
    Constant,
    Context,
    Effect,
    GraphScopeError,
    NodeRef,
    Rate,
    Shape,
    ShapeMismatchError,
    Transform,
    TupleValue,
    apply,
    shape_of,
)

double = Transform(name="double", pure=lambda ctx, x: ctx.call("mul", x, 2.0))
swap = Transform(name="swap", pure=lambda ctx, t: ctx.tuple(t[1], t[0]), arity=2)


class TestShapeOf:
    def test_variants(self, ctx: Context) -> None:
        one = ctx.const(1.0)
        assert shape_of(one) is Shape.SCALAR
        assert shape_of(2.0) is Shape.SCALAR
        assert shape_of(Constant(value=2.0)) is Shape.SCALAR
        assert shape_of(TupleValue(one, 2.0)) is Shape.TUPLE
        assert shape_of(Effect(one)) is Shape.EFFECT_SCALAR
        assert shape_of(Effect(TupleValue(one))) is Shape.EFFECT_TUPLE

    def test_rejects_bool(self) -> None:
        with pytest.raises(ShapeMismatchError):
            shape_of(True)

    def test_rejects_containers(self) -> None:
        with pytest.raises(ShapeMismatchError):
            shape_of([1.0, 2.0])


class TestTransform:
    def test_needs_a_form(self) -> None:
        with pytest.raises(ValidationError, match="needs a pure or an effectful form"):
            Transform(name="empty")

    def test_arity_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            Transform(name="bad", pure=lambda ctx, x: x, arity=0)

    def test_form_selection(self) -> None:
        def pure(ctx: Context, x: object) -> object:
            return x

        def effectful(ctx: Context, x: object) -> object:
            return x

        both = Transform(name="t", pure=pure, effectful=effectful)
        assert both.form(wrapped=False) is pure
        assert both.form(wrapped=True) is effectful
        only_pure = Transform(name="p", pure=pure)
        assert only_pure.form(wrapped=True) is pure
        only_effectful = Transform(name="e", effectful=effectful)
        assert only_effectful.form(wrapped=False) is effectful


class TestApply:
    def test_scalar(self, ctx: Context) -> None:
        result = apply(ctx, double, ctx.const(1.0))
        assert isinstance(result, NodeRef)
        assert result.op == "mul"

    def test_literal_operand_lifted(self, ctx: Context) -> None:
        result = ctx.apply(double, ctx.const(3.0))
        assert result.node.operands[1] == Constant(value=2.0)

    @pytest.mark.parametrize("arity", [1, 2, 5])
    def test_tuple_arity_preserved(self, ctx: Context, arity: int) -> None:
        values = ctx.tuple(*(ctx.const(float(i)) for i in range(arity)))
        result = apply(ctx, double, values)
        assert isinstance(result, TupleValue)
        assert len(result) == arity
        assert all(item.op == "mul" for item in result)

    def test_effect_tuple_keeps_tokens_and_arity(self, ctx: Context) -> None:
        r = ctx.random(0.0, 1.0)
        wrapped = Effect(ctx.tuple(r.value, 0.5, 0.25), r.tokens)
        result = apply(ctx, double, wrapped)
        assert isinstance(result, Effect)
        assert len(result.value) == 3
        assert result.tokens == r.tokens

    def test_whole_tuple_transform(self, ctx: Context) -> None:
        a, b = ctx.const(1.0), ctx.const(2.0)
        result = apply(ctx, swap, ctx.tuple(a, b))
        assert list(result) == [b, a]

    def test_whole_tuple_transform_wrong_arity(self, ctx: Context) -> None:
        with pytest.raises(ShapeMismatchError, match="takes a 2-tuple, got a 3-tuple"):
            apply(ctx, swap, ctx.tuple(1.0, 2.0, 3.0))

    def test_whole_tuple_transform_on_scalar(self, ctx: Context) -> None:
        with pytest.raises(ShapeMismatchError, match="got a scalar"):
            apply(ctx, swap, ctx.const(1.0))

    def test_scalar_transform_returning_tuple(self, ctx: Context) -> None:
        split = Transform(name="split", pure=lambda ctx, x: ctx.tuple(x, x))
        with pytest.raises(ShapeMismatchError, match="returned a tuple"):
            apply(ctx, split, ctx.const(1.0))

    def test_foreign_operand(self, ctx: Context) -> None:
        foreign = Context("other").const(1.0)
        with pytest.raises(GraphScopeError):
            apply(ctx, double, foreign)

    def test_failing_channel_withdraws_earlier_channels(self, ctx: Context) -> None:
        draw = Transform(name="draw", pure=lambda c, x: c.random(0.0, x))
        foreign = Context("other").const(1.0)
        nodes, issued = len(ctx.graph), len(ctx.effects)
        with pytest.raises(GraphScopeError):
            apply(ctx, draw, TupleValue(1.0, foreign))
        assert len(ctx.graph) == nodes
        assert len(ctx.effects) == issued
        assert ctx.render().instructions == []

    def test_effectful_form_on_wrapped_operand(self, ctx: Context) -> None:
        jitter = Transform(
            name="jitter",
            pure=lambda ctx, x: x * 1.0,
            effectful=lambda ctx, x: ctx.random(0.0, x),
        )
        plain = apply(ctx, jitter, ctx.const(0.1))
        assert isinstance(plain, NodeRef)
        assert len(ctx.effects) == 0

        seed = ctx.random(0.0, 1.0)
        result = apply(ctx, jitter, seed)
        assert isinstance(result, Effect)
        assert [t.serial for t in result.tokens] == [1, 2]
        assert result.value.op == "random"


class TestRateViews:
    def test_ar_broadcasts(self, ctx: Context) -> None:
        values = ctx.tuple(ctx.const(1.0), ctx.kr(ctx.const(2.0)))
        result = ctx.ar(values)
        assert [v.rate for v in result] == [Rate.AUDIO, Rate.AUDIO]

    def test_ir_on_effect(self, ctx: Context) -> None:
        noise = ctx.call("random", ctx.ar(ctx.const(0.0)), 1.0)
        snap = ctx.ir(noise)
        assert isinstance(snap, Effect)
        assert snap.value.op == "snapshot"
        assert snap.tokens == noise.tokens

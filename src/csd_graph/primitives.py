"""Primitive registration and invocation.

A primitive declares its arity, per-operand rate requirements, effect
class and resource class (see PrimitiveSpec).  The catalog of real
oscillators and filters lives outside this package; only arithmetic,
mutable references and random sources are built in.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from typing import TYPE_CHECKING, Any, Union

from csd_graph.effects import Effect, merge_tokens, unwrap
from csd_graph.errors import ShapeMismatchError, UnknownPrimitiveError
from csd_graph.graph import NodeRef, TupleValue
from csd_graph.models import (
    Constant,
    EffectClass,
    EffectToken,
    PrimitiveSpec,
    Rate,
    ResourceClass,
)
from csd_graph.rates import coerce

if TYPE_CHECKING:
    from csd_graph.context import Context

Result = Union[NodeRef, Constant, TupleValue, Effect]

_COMMUTATIVE_OPS = frozenset({"add", "mul", "min", "max"})

_EFFECTFUL = EffectClass.EFFECTFUL

BUILTINS: tuple[PrimitiveSpec, ...] = (
    PrimitiveSpec(name="add", arity=2, commutative=True),
    PrimitiveSpec(name="sub", arity=2),
    PrimitiveSpec(name="mul", arity=2, commutative=True),
    PrimitiveSpec(name="div", arity=2),
    PrimitiveSpec(name="mod", arity=2),
    PrimitiveSpec(name="pow", arity=2),
    PrimitiveSpec(name="min", arity=2, commutative=True),
    PrimitiveSpec(name="max", arity=2, commutative=True),
    PrimitiveSpec(name="neg", arity=1),
    PrimitiveSpec(name="abs", arity=1),
    PrimitiveSpec(name="random", arity=2, effect=_EFFECTFUL),
    PrimitiveSpec(name="ref_new", arity=1, effect=_EFFECTFUL, resource=ResourceClass.ALLOCATE),
    PrimitiveSpec(name="ref_read", arity=1, effect=_EFFECTFUL, resource=ResourceClass.READ),
    PrimitiveSpec(name="ref_write", arity=2, effect=_EFFECTFUL, resource=ResourceClass.WRITE),
)


class PrimitiveRegistry:
    """Name -> PrimitiveSpec table consulted by ``call``."""

    def __init__(self, specs: Iterable[PrimitiveSpec] = ()) -> None:
        self._specs: dict[str, PrimitiveSpec] = {}
        for spec in specs:
            self.register(spec)

    def __contains__(self, name: object) -> bool:
        return name in self._specs

    def __iter__(self) -> Iterator[PrimitiveSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def register(self, spec: PrimitiveSpec) -> PrimitiveSpec:
        if spec.name in self._specs:
            raise ValueError(f"primitive '{spec.name}' is already registered")
        self._specs[spec.name] = spec
        return spec

    def define(self, name: str, arity: int, **kwargs: Any) -> PrimitiveSpec:
        """Build and register a PrimitiveSpec in one step."""
        return self.register(PrimitiveSpec(name=name, arity=arity, **kwargs))

    def get(self, name: str) -> PrimitiveSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise UnknownPrimitiveError(f"unknown primitive '{name}'") from None

    def commutative_ops(self) -> frozenset[str]:
        return _COMMUTATIVE_OPS | {s.name for s in self._specs.values() if s.commutative}


def default_registry() -> PrimitiveRegistry:
    return PrimitiveRegistry(BUILTINS)


def call(ctx: Context, name: str, *args: Any, rate: Rate | None = None) -> Result:
    """Invoke the registered primitive *name* on *args*."""
    return invoke(ctx, ctx.registry.get(name), args, rate)


def invoke(
    ctx: Context,
    spec: PrimitiveSpec,
    args: Sequence[Any],
    rate: Rate | None = None,
) -> Result:
    """Instantiate *spec* on *args*.

    Effect-wrapped arguments are unwrapped and their tokens carried to the
    result.  Tuple arguments expand the call once per channel; all tuple
    arguments must share one arity.
    """
    if len(args) != spec.arity:
        raise ShapeMismatchError(
            f"'{spec.name}' takes {spec.arity} operands, got {len(args)}"
        )
    payloads: list[Any] = []
    token_groups: list[tuple[EffectToken, ...]] = []
    for arg in args:
        payload, tokens = unwrap(arg)
        payloads.append(payload)
        token_groups.append(tokens)

    widths = {len(p) for p in payloads if isinstance(p, TupleValue)}
    if len(widths) > 1:
        raise ShapeMismatchError(
            f"'{spec.name}' got tuple operands of different arities {sorted(widths)}"
        )
    if widths and spec.outputs > 1:
        raise ShapeMismatchError(
            f"'{spec.name}' has {spec.outputs} outputs and cannot expand over tuples"
        )

    if widths:
        width = widths.pop()
        per_channel = [
            [p[i] if isinstance(p, TupleValue) else p for p in payloads] for i in range(width)
        ]
        # Every channel must pass before the first one is interned.
        for channel_args in per_channel:
            _check(ctx, spec, channel_args, rate)
        channels = [_instantiate(ctx, spec, channel_args, rate) for channel_args in per_channel]
        result: Result = _reassemble(channels)
    else:
        result = _instantiate(ctx, spec, payloads, rate)

    carried = merge_tokens(*token_groups)
    if not carried:
        return result
    value, own = unwrap(result)
    return Effect(value, merge_tokens(carried, own))  # type: ignore[arg-type]


def _check(ctx: Context, spec: PrimitiveSpec, args: Sequence[Any], rate: Rate | None) -> None:
    requirements = spec.rates or None
    hint = rate if spec.output_rate is None else None
    if spec.effect is EffectClass.PURE:
        ctx.graph.check(spec.name, args, hint, requirements=requirements)
    else:
        ctx.effects.check(
            spec.name, args, hint, resource=spec.resource, requirements=requirements
        )


def _instantiate(
    ctx: Context,
    spec: PrimitiveSpec,
    args: Sequence[Any],
    rate: Rate | None,
) -> Result:
    requirements = spec.rates or None
    hint = rate if spec.output_rate is None else None
    # An override is explicit whether it sets the rate here or via a coercion below.
    forced = rate is not None and (hint is not None or rate is spec.output_rate)
    token: EffectToken | None = None
    if spec.effect is EffectClass.PURE:
        ref = ctx.graph.intern(
            spec.name,
            args,
            hint,
            requirements=requirements,
            forced=forced,
            output_rate=spec.output_rate,
        )
    else:
        ref, token = ctx.effects.sequence(
            spec.name,
            args,
            hint,
            resource=spec.resource,
            requirements=requirements,
            output_rate=spec.output_rate,
            forced=forced,
        )

    outputs: list[NodeRef | Constant] = [ref]
    if spec.outputs > 1:
        outputs = [
            ctx.graph.intern(
                "out", [ref, Constant(value=i)], output_rate=ref.rate, forced=forced
            )
            for i in range(spec.outputs)
        ]
    if spec.output_rate is not None and rate is not None and rate is not spec.output_rate:
        outputs = [coerce(ctx.graph, o, rate) for o in outputs]

    value: Union[NodeRef, Constant, TupleValue] = (
        outputs[0] if spec.outputs == 1 else TupleValue(*outputs)
    )
    if token is None:
        return value
    return Effect(value, (token,))


def _reassemble(channels: Sequence[Result]) -> Result:
    """Group per-channel results into a tuple, lifting effects outward."""
    payloads = []
    groups = []
    for channel in channels:
        payload, tokens = unwrap(channel)
        payloads.append(payload)
        groups.append(tokens)
    value = TupleValue(*payloads)
    tokens = merge_tokens(*groups)
    return Effect(value, tokens) if tokens else value

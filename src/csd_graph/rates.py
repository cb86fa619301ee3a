"""Rate inference and coercion.

Rates are ordered INIT < CONTROL < AUDIO. A node runs at the fastest rate
among its operands unless told otherwise; a slower consumer gets a
coercion node in front of each faster operand.  Coercion to init-rate is
a one-time snapshot and is only ever inserted on explicit request.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Union

from csd_graph.errors import RateConflictError, ShapeMismatchError
from csd_graph.models import Constant, Rate

if TYPE_CHECKING:
    from csd_graph.effects import Effect
    from csd_graph.graph import Graph, NodeRef, ScalarInput, TupleValue

logger = logging.getLogger(__name__)

# (source rate, target rate) -> coercion operator
COERCION_OPS: dict[tuple[Rate, Rate], str] = {
    (Rate.AUDIO, Rate.CONTROL): "downsamp",
    (Rate.CONTROL, Rate.AUDIO): "upsamp",
    (Rate.INIT, Rate.AUDIO): "upsamp",
    (Rate.INIT, Rate.CONTROL): "hold",
    (Rate.AUDIO, Rate.INIT): "snapshot",
    (Rate.CONTROL, Rate.INIT): "snapshot",
}

_COERCION_NAMES = frozenset(COERCION_OPS.values())


def infer_rate(operand_rates: Iterable[Rate]) -> Rate:
    """Least restrictive rate compatible with every operand (INIT for none)."""
    return max(operand_rates, default=Rate.INIT)


def resolve_rate(value: Union[NodeRef, Constant, TupleValue, Effect, float, str]) -> Rate:
    """Rate of a value as seen by a consumer.

    Literals are init-rate; a tuple runs at its fastest element; an
    effect-wrapped value at the rate of what it wraps.
    """
    from csd_graph.effects import Effect
    from csd_graph.graph import NodeRef, TupleValue

    if isinstance(value, Effect):
        return resolve_rate(value.value)
    if isinstance(value, TupleValue):
        return infer_rate(resolve_rate(item) for item in value)
    if isinstance(value, NodeRef):
        return value.rate
    if isinstance(value, (Constant, int, float, str)):
        return Rate.INIT
    raise ShapeMismatchError(f"cannot resolve the rate of {type(value).__name__}")


def is_coercion(op: str) -> bool:
    return op in _COERCION_NAMES


def check_operands(
    graph: Graph,
    op: str,
    operands: Sequence[NodeRef | Constant],
    requirements: Sequence[Rate | None] | None,
    rate_hint: Rate | None,
) -> None:
    """Raise RateConflictError if *operands* cannot feed *op* as requested.

    Runs before any node is interned so that a failure leaves the graph
    untouched.
    """
    from csd_graph.graph import NodeRef

    forced: dict[Rate, NodeRef] = {}
    for position, operand in enumerate(operands):
        rate = graph.rate_of(operand)
        if isinstance(operand, NodeRef) and operand.node.forced and rate > Rate.INIT:
            forced.setdefault(rate, operand)
        required = requirements[position] if requirements is not None else None
        if required is Rate.INIT and rate > Rate.INIT:
            raise RateConflictError(
                f"'{op}' operand {position} requires init-rate but got a live "
                f"{rate.name.lower()}-rate value; snapshot it explicitly with ir()",
                node=operand.index if isinstance(operand, NodeRef) else None,
            )
        if rate_hint is Rate.INIT and rate > Rate.INIT:
            raise RateConflictError(
                f"'{op}' forced to init-rate but operand {position} is "
                f"{rate.name.lower()}-rate; snapshot it explicitly with ir()",
                node=operand.index if isinstance(operand, NodeRef) else None,
            )
    if len(forced) > 1:
        names = " and ".join(r.name.lower() for r in sorted(forced))
        raise RateConflictError(f"'{op}' combines operands explicitly forced to {names} rate")


def coerce_operands(
    graph: Graph,
    operands: Sequence[NodeRef | Constant],
    requirements: Sequence[Rate | None] | None,
    rate_hint: Rate | None,
) -> list[NodeRef | Constant]:
    """Insert the coercions demanded by requirements and the rate hint.

    A hint pulls every live operand to its rate, down or up, except
    operands whose own rate requirement already decides their rate.
    """
    result: list[NodeRef | Constant] = []
    for position, operand in enumerate(operands):
        required = requirements[position] if requirements is not None else None
        value = operand
        if required is not None and required is not Rate.INIT:
            current = graph.rate_of(value)
            if required is Rate.CONTROL and current is Rate.AUDIO:
                value = coerce(graph, value, Rate.CONTROL, explicit=False)
            elif required is Rate.AUDIO and current < Rate.AUDIO and not isinstance(
                value, Constant
            ):
                value = coerce(graph, value, Rate.AUDIO, explicit=False)
        if rate_hint is not None:
            current = graph.rate_of(value)
            if current > rate_hint:
                value = coerce(graph, value, rate_hint, explicit=True)
            elif Rate.INIT < current < rate_hint and required is None:
                # Init-rate values read the same at any rate and stay as they are.
                value = coerce(graph, value, rate_hint, explicit=True)
        result.append(value)
    return result


def coerce(
    graph: Graph,
    value: ScalarInput,
    target: Rate,
    *,
    explicit: bool = True,
) -> NodeRef | Constant:
    """Convert *value* to *target* rate.

    Audio to control keeps the last sample of each block, control to
    audio holds the block value, and anything to init takes a single
    snapshot at instantiation.  Literals and values already at *target*
    pass through.  Converting a constant-valued coercion back to its
    source rate returns the source, so constants never drift.
    """
    operand = graph.operand(value)
    if isinstance(operand, Constant):
        return operand
    current = operand.rate
    if current is target:
        return operand

    node = operand.node
    if is_coercion(node.op) and node.operands:
        source = node.operands[0]
        if not isinstance(source, Constant):
            source_ref = graph.ref(source)
            if source_ref.rate is target and graph.is_constant_valued(source_ref):
                return source_ref

    cached = graph.cached_coercion(operand.index, target, explicit)
    if cached is not None:
        return cached

    op = COERCION_OPS[(current, target)]
    ref = graph.intern(op, [operand], output_rate=target, forced=explicit)
    graph.remember_coercion(operand.index, target, explicit, ref)
    logger.debug(
        "coerce n%d %s -> %s via %s (n%d)",
        operand.index,
        current.token,
        target.token,
        op,
        ref.index,
    )
    return ref


def ar(graph: Graph, value: ScalarInput) -> NodeRef | Constant:
    return coerce(graph, value, Rate.AUDIO)


def kr(graph: Graph, value: ScalarInput) -> NodeRef | Constant:
    return coerce(graph, value, Rate.CONTROL)


def ir(graph: Graph, value: ScalarInput) -> NodeRef | Constant:
    """Snapshot *value* once at instantiation."""
    return coerce(graph, value, Rate.INIT)

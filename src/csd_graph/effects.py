"""Ordering of effectful operations.

Every effectful call gets a fresh EffectToken, and the sequencer records
tokens in issue order.  Two calls with identical operands therefore stay
distinct nodes, and the renderer emits them in the recorded order.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Sequence
from typing import TYPE_CHECKING, Callable, Union

from csd_graph.errors import EffectOrderError, GraphScopeError, ShapeMismatchError
from csd_graph.graph import Graph, NodeRef, ScalarInput, TupleValue
from csd_graph.models import Constant, EffectClass, EffectToken, Rate, ResourceClass

if TYPE_CHECKING:
    from csd_graph.context import Context

logger = logging.getLogger(__name__)


class Effect:
    """A scalar or tuple result that depends on effectful occurrences."""

    __slots__ = ("value", "tokens")

    def __init__(
        self,
        value: Union[NodeRef, Constant, TupleValue],
        tokens: Iterable[EffectToken] = (),
    ) -> None:
        if isinstance(value, Effect):
            raise TypeError("Effect values do not nest; merge their tokens instead")
        self.value = value
        self.tokens = tuple(tokens)

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, Effect)
            and self.value == other.value
            and self.tokens == other.tokens
        )

    def __hash__(self) -> int:
        return hash((self.value, self.tokens))

    def __repr__(self) -> str:
        serials = ", ".join(str(t.serial) for t in self.tokens)
        return f"<Effect {self.value!r} after [{serials}]>"


def unwrap(value: object) -> tuple[object, tuple[EffectToken, ...]]:
    """Split an effect-wrapped value into its payload and its tokens."""
    if isinstance(value, Effect):
        return value.value, value.tokens
    return value, ()


def merge_tokens(*groups: Iterable[EffectToken]) -> tuple[EffectToken, ...]:
    """Concatenate token groups, dropping repeats and keeping issue order."""
    seen: set[EffectToken] = set()
    merged: list[EffectToken] = []
    for group in groups:
        for token in group:
            if token not in seen:
                seen.add(token)
                merged.append(token)
    return tuple(sorted(merged))


class EffectSequencer:
    """The single effect stream of one graph."""

    def __init__(self, graph: Graph) -> None:
        self.graph = graph
        self.uuid = uuid.uuid4().hex
        self._serial = 0
        self._history: list[EffectToken] = []
        self._nodes: dict[int, int] = {}  # token serial -> node index
        self._allocations: dict[int, int] = {}  # node index -> token serial

    def __len__(self) -> int:
        return len(self._history)

    @property
    def history(self) -> tuple[EffectToken, ...]:
        return tuple(self._history)

    def position(self, token: EffectToken) -> int:
        if token.stream != self.uuid:
            raise GraphScopeError(f"effect token {token.serial} was issued by another stream")
        return self._history.index(token)

    def node_of(self, token: EffectToken) -> NodeRef:
        return self.graph.ref(self._nodes[token.serial])

    def is_allocated(self, handle: NodeRef) -> bool:
        return handle.graph is self.graph and handle.index in self._allocations

    def sequence(
        self,
        op: str,
        operands: Sequence[ScalarInput] = (),
        rate_hint: Rate | None = None,
        *,
        resource: ResourceClass = ResourceClass.NONE,
        requirements: Sequence[Rate | None] | None = None,
        output_rate: Rate | None = None,
        forced: bool = False,
    ) -> tuple[NodeRef, EffectToken]:
        """Intern one effectful occurrence of *op* and mint its token.

        Reads and writes take the resource handle as first operand; the
        handle must come from an earlier allocation on this stream, or
        EffectOrderError is raised.  Nothing is recorded if interning fails.
        """
        if resource in (ResourceClass.READ, ResourceClass.WRITE):
            self._check_resource(op, operands)

        serial = self._serial + 1
        ref = self.graph.intern(
            op,
            operands,
            rate_hint,
            requirements=requirements,
            effect=EffectClass.EFFECTFUL,
            resource=resource,
            token=serial,
            forced=forced,
            output_rate=output_rate,
        )
        token = EffectToken(serial=serial, stream=self.uuid)
        self._serial = serial
        self._history.append(token)
        self._nodes[serial] = ref.index
        if resource is ResourceClass.ALLOCATE:
            self._allocations[ref.index] = serial
        logger.debug("effect %d: %s (n%d, %s)", serial, op, ref.index, resource.value)
        return ref, token

    def check(
        self,
        op: str,
        operands: Sequence[ScalarInput] = (),
        rate_hint: Rate | None = None,
        *,
        resource: ResourceClass = ResourceClass.NONE,
        requirements: Sequence[Rate | None] | None = None,
    ) -> None:
        """Raise whatever ``sequence`` would raise, without issuing anything."""
        if resource in (ResourceClass.READ, ResourceClass.WRITE):
            self._check_resource(op, operands)
        self.graph.check(op, operands, rate_hint, requirements=requirements)

    def rollback(self, size: int) -> None:
        """Forget every occurrence issued after the first *size*.

        Serials are not reused, so a discarded token never aliases a new one.
        """
        for token in self._history[size:]:
            index = self._nodes.pop(token.serial)
            self._allocations.pop(index, None)
        del self._history[size:]

    def _check_resource(self, op: str, operands: Sequence[ScalarInput]) -> None:
        if not operands:
            raise EffectOrderError(f"'{op}' needs a resource handle as its first operand")
        handle = operands[0]
        if not isinstance(handle, NodeRef):
            raise EffectOrderError(f"'{op}' was given {handle!r} instead of a resource handle")
        if handle.graph is not self.graph:
            raise GraphScopeError(
                f"'{op}' resource handle belongs to graph '{handle.graph.name}'",
                node=handle.index,
            )
        if handle.index not in self._allocations:
            raise EffectOrderError(
                f"'{op}' uses n{handle.index} ({handle.op}) before any allocation of it",
                node=handle.index,
            )


# ---------------------------------------------------------------------------
# Mutable references and random sources
# ---------------------------------------------------------------------------


def _scalar(value: object, what: str) -> ScalarInput:
    if isinstance(value, (TupleValue, Effect)):
        raise ShapeMismatchError(f"{what} expects a scalar, got {type(value).__name__}")
    return value  # type: ignore[return-value]


def new_ref(ctx: Context, init: ScalarInput | Effect, rate: Rate | None = None) -> Effect:
    """Allocate a mutable cell holding *init*; the result is its handle.

    The cell runs at *rate*, or at the rate of *init* when not given.
    """
    value, tokens = unwrap(init)
    ref, token = ctx.effects.sequence(
        "ref_new",
        [_scalar(value, "new_ref")],
        resource=ResourceClass.ALLOCATE,
        output_rate=rate,
    )
    return Effect(ref, merge_tokens(tokens, (token,)))


def read_ref(ctx: Context, handle: NodeRef | Effect) -> Effect:
    value, tokens = unwrap(handle)
    ref, token = ctx.effects.sequence(
        "ref_read", [_scalar(value, "read_ref")], resource=ResourceClass.READ
    )
    return Effect(ref, merge_tokens(tokens, (token,)))


def write_ref(ctx: Context, handle: NodeRef | Effect, value: ScalarInput | Effect) -> Effect:
    target, handle_tokens = unwrap(handle)
    payload, value_tokens = unwrap(value)
    ref, token = ctx.effects.sequence(
        "ref_write",
        [_scalar(target, "write_ref"), _scalar(payload, "write_ref")],
        resource=ResourceClass.WRITE,
    )
    return Effect(ref, merge_tokens(handle_tokens, value_tokens, (token,)))


def modify_ref(
    ctx: Context,
    handle: NodeRef | Effect,
    fn: Callable[[NodeRef], ScalarInput],
) -> Effect:
    """Read the cell, apply the pure function *fn*, write the result back.

    If *fn* or the write fails, the read is withdrawn as well.
    """
    with ctx.atomic():
        current = read_ref(ctx, handle)
        updated = fn(current.value)  # type: ignore[arg-type]
        return write_ref(ctx, handle, Effect(ctx.graph.operand(updated), current.tokens))


def random(
    ctx: Context, lo: ScalarInput | Effect = 0.0, hi: ScalarInput | Effect = 1.0
) -> Effect:
    """Uniform random draw in [lo, hi); every call is its own occurrence."""
    lo_value, lo_tokens = unwrap(lo)
    hi_value, hi_tokens = unwrap(hi)
    ref, token = ctx.effects.sequence(
        "random", [_scalar(lo_value, "random"), _scalar(hi_value, "random")]
    )
    return Effect(ref, merge_tokens(lo_tokens, hi_tokens, (token,)))

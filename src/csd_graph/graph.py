"""Expression graph with structural interning.

Building a graph never evaluates anything: each combinator call turns
into a node description that is either stored or, for pure nodes with an
identical structure, resolved to the node already stored.  Nodes are
only ever appended, except that a failed call may withdraw what it added.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator, Sequence
from typing import Union

from csd_graph import rates
from csd_graph.errors import GraphScopeError, ShapeMismatchError
from csd_graph.models import (
    Constant,
    EffectClass,
    Node,
    Operand,
    Rate,
    ResourceClass,
    SignalNode,
    TableNode,
)

logger = logging.getLogger(__name__)

# Anything a combinator accepts where a single signal is expected.
ScalarInput = Union["NodeRef", Constant, float, int, str]

_StructKey = tuple[object, ...]

# Ops whose result is constant whenever their operands are.
_VALUE_PRESERVING_OPS = frozenset(
    {"const", "add", "sub", "mul", "div", "mod", "pow", "min", "max", "neg", "abs"}
)


class NodeRef:
    """Reference to one node of one graph."""

    __slots__ = ("graph", "index")

    def __init__(self, graph: Graph, index: int) -> None:
        self.graph = graph
        self.index = index

    def __eq__(self, other: object) -> bool:
        return (
            isinstance(other, NodeRef)
            and self.graph is other.graph
            and self.index == other.index
        )

    def __hash__(self) -> int:
        return hash((self.graph.uuid, self.index))

    def __repr__(self) -> str:
        node = self.node
        return f"<NodeRef n{self.index} {node.op}:{node.rate.token}>"

    @property
    def node(self) -> Node:
        return self.graph.node(self.index)

    @property
    def rate(self) -> Rate:
        return self.node.rate

    @property
    def op(self) -> str:
        return self.node.op

    @property
    def effect(self) -> EffectClass:
        return self.node.effect


class TupleValue(Sequence[Union[NodeRef, Constant]]):
    """Fixed-arity grouping of scalar values. Wraps without copying nodes."""

    __slots__ = ("_items",)

    def __init__(self, *items: ScalarInput) -> None:
        values: list[NodeRef | Constant] = []
        for item in items:
            if isinstance(item, (NodeRef, Constant)):
                values.append(item)
            elif isinstance(item, (int, float, str)):
                values.append(Constant(value=item))
            else:
                raise ShapeMismatchError(
                    f"tuple elements must be scalars, got {type(item).__name__}"
                )
        self._items = tuple(values)

    def __getitem__(self, i):  # type: ignore[no-untyped-def]
        if isinstance(i, slice):
            return TupleValue(*self._items[i])
        return self._items[i]

    def __iter__(self) -> Iterator[NodeRef | Constant]:
        yield from self._items

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TupleValue) and self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"<TupleValue({', '.join(repr(x) for x in self._items)})>"

    @property
    def arity(self) -> int:
        return len(self._items)


def lift(value: ScalarInput) -> NodeRef | Constant:
    """Turn a Python literal into a Constant; pass node references through."""
    if isinstance(value, (NodeRef, Constant)):
        return value
    if isinstance(value, bool):
        raise ShapeMismatchError("booleans are not signal values")
    if isinstance(value, (int, float, str)):
        return Constant(value=value)
    raise ShapeMismatchError(f"expected a scalar operand, got {type(value).__name__}")


class Graph:
    """Node store owned by a single render.

    Pure nodes are hash-consed on (op, operands, rate, flags); effectful
    nodes are always appended since each carries its own token.
    """

    def __init__(self, name: str = "instr") -> None:
        self.name = name
        self.uuid = uuid.uuid4().hex
        self.sealed = False
        self._nodes: list[Node] = []
        self._pure: dict[_StructKey, int] = {}
        self._coercions: dict[tuple[int, Rate, bool], int] = {}
        self._constant_valued: dict[int, bool] = {}

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"<Graph {self.name!r} nodes={len(self._nodes)}>"

    @property
    def nodes(self) -> tuple[Node, ...]:
        return tuple(self._nodes)

    def node(self, index: int) -> Node:
        return self._nodes[index]

    def ref(self, index: int) -> NodeRef:
        if not 0 <= index < len(self._nodes):
            raise GraphScopeError(f"graph '{self.name}' has no node {index}", node=index)
        return NodeRef(self, index)

    def seal(self) -> None:
        self.sealed = True

    def rollback(self, size: int) -> None:
        """Drop every node stored at index *size* or later, with its cache entries."""
        del self._nodes[size:]
        self._pure = {k: i for k, i in self._pure.items() if i < size}
        self._coercions = {
            k: i for k, i in self._coercions.items() if i < size and k[0] < size
        }
        self._constant_valued = {i: v for i, v in self._constant_valued.items() if i < size}

    # -- operand handling ---------------------------------------------------

    def operand(self, value: ScalarInput) -> NodeRef | Constant:
        """Lift *value* and check it belongs to this graph."""
        lifted = lift(value)
        if isinstance(lifted, NodeRef) and lifted.graph is not self:
            raise GraphScopeError(
                f"operand {lifted!r} belongs to graph '{lifted.graph.name}', "
                f"not '{self.name}'",
                node=lifted.index,
            )
        return lifted

    def rate_of(self, value: NodeRef | Constant) -> Rate:
        if isinstance(value, Constant):
            return Rate.INIT
        return self._nodes[value.index].rate

    def is_constant_valued(self, value: NodeRef | Constant) -> bool:
        """True if *value* holds the same value for the life of the instrument.

        That is a literal, an init-rate pure node, or arithmetic and rate
        coercion over such values.  A pure oscillator fed by literals is
        not constant-valued.
        """
        if isinstance(value, Constant):
            return True
        cached = self._constant_valued.get(value.index)
        if cached is not None:
            return cached
        node = self._nodes[value.index]
        if node.effect is EffectClass.EFFECTFUL:
            result = False
        elif (
            node.rate is not Rate.INIT
            and node.op not in _VALUE_PRESERVING_OPS
            and not rates.is_coercion(node.op)
        ):
            result = False
        else:
            result = all(
                isinstance(o, Constant) or self.is_constant_valued(NodeRef(self, o))
                for o in node.operands
            )
        self._constant_valued[value.index] = result
        return result

    # -- interning ----------------------------------------------------------

    def check(
        self,
        op: str,
        operands: Iterable[ScalarInput] = (),
        rate_hint: Rate | None = None,
        *,
        requirements: Sequence[Rate | None] | None = None,
    ) -> list[NodeRef | Constant]:
        """Validate a node description without storing anything.

        Returns the lifted operands.  ``intern`` runs this first, and
        multichannel callers run it for every channel before interning any.
        """
        if self.sealed:
            raise GraphScopeError(f"graph '{self.name}' has already been rendered")
        args = [self.operand(v) for v in operands]
        if requirements is not None and len(requirements) != len(args):
            raise ShapeMismatchError(
                f"'{op}' expects {len(requirements)} operands, got {len(args)}"
            )
        rates.check_operands(self, op, args, requirements, rate_hint)
        return args

    def intern(
        self,
        op: str,
        operands: Iterable[ScalarInput] = (),
        rate_hint: Rate | None = None,
        *,
        requirements: Sequence[Rate | None] | None = None,
        effect: EffectClass = EffectClass.PURE,
        resource: ResourceClass = ResourceClass.NONE,
        token: int | None = None,
        forced: bool = False,
        output_rate: Rate | None = None,
    ) -> NodeRef:
        """Build or reuse a node from its structural description.

        *requirements* gives a per-operand rate requirement; mismatching
        live operands are coerced, except where init-rate is required.
        *output_rate* fixes the node's rate regardless of its operands.
        Raises GraphScopeError, RateConflictError or ShapeMismatchError
        before anything is stored.
        """
        args = self.check(op, operands, rate_hint, requirements=requirements)
        args = rates.coerce_operands(self, args, requirements, rate_hint)
        if output_rate is not None:
            rate = output_rate
        else:
            rate = rates.infer_rate(self.rate_of(a) for a in args)
            if rate_hint is not None:
                rate = rate_hint

        stored: tuple[Operand, ...] = tuple(
            a.index if isinstance(a, NodeRef) else a for a in args
        )
        node = SignalNode(
            op=op,
            operands=stored,
            rate=rate,
            effect=effect,
            resource=resource,
            token=token,
            forced=forced,
        )
        return self._store(node)

    def constant(self, value: float | str) -> NodeRef:
        """Intern an init-rate leaf holding a literal."""
        return self.intern("const", [Constant(value=value)], output_rate=Rate.INIT)

    def _store(self, node: Node) -> NodeRef:
        key: _StructKey | None = None
        if node.effect is EffectClass.PURE:
            key = structural_key(node)
            existing = self._pure.get(key)
            if existing is not None:
                return NodeRef(self, existing)
        index = len(self._nodes)
        self._nodes.append(node)
        if key is not None:
            self._pure[key] = index
        logger.debug("intern n%d %s:%s %s", index, node.op, node.rate.token, node.operands)
        return NodeRef(self, index)

    def add_table(self, table: TableNode) -> NodeRef:
        if self.sealed:
            raise GraphScopeError(f"graph '{self.name}' has already been rendered")
        return self._store(table)

    # -- coercion cache -----------------------------------------------------

    def cached_coercion(self, source: int, target: Rate, explicit: bool) -> NodeRef | None:
        index = self._coercions.get((source, target, explicit))
        return None if index is None else NodeRef(self, index)

    def remember_coercion(self, source: int, target: Rate, explicit: bool, ref: NodeRef) -> None:
        self._coercions[(source, target, explicit)] = ref.index


def operand_key(operand: Operand) -> tuple[object, ...]:
    if isinstance(operand, Constant):
        return ("lit",) + operand.key()
    return ("n", operand)


def structural_key(node: Node) -> _StructKey:
    """Hashable description of a node as stored (operands by index)."""
    if isinstance(node, TableNode):
        return ("table", node.gen, node.params, node.size, node.guard)
    return (
        "signal",
        node.op,
        tuple(operand_key(o) for o in node.operands),
        node.rate,
        node.effect,
        node.resource,
        node.token,
        node.forced,
    )

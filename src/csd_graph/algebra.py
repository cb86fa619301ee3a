"""Arithmetic over signal values.

Binary operators dispatch on the (left shape, right shape) pair through a
fixed table: scalar/scalar interns a node, tuples broadcast or zip, and an
effect-wrapped side is unwrapped and its tokens carried to the result.

Importing this module installs the Python operators (``+ - * / % **``,
unary ``-`` and ``abs``) on NodeRef, TupleValue and Effect::

    s = ctx.const(1) + ctx.const(2)
    half = s * 0.5
"""

from __future__ import annotations

from typing import Any, Callable, Union

from csd_graph.dispatch import shape_of
from csd_graph.effects import Effect, merge_tokens, unwrap
from csd_graph.errors import GraphScopeError, ShapeMismatchError
from csd_graph.graph import Graph, NodeRef, TupleValue
from csd_graph.models import Constant, Shape

Value = Union[NodeRef, Constant, TupleValue, Effect, float, int, str]

_Handler = Callable[[Graph, str, Any, Any], Any]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _graph_of(*values: Any) -> Graph | None:
    for value in values:
        payload, _ = unwrap(value)
        if isinstance(payload, NodeRef):
            return payload.graph
        if isinstance(payload, TupleValue):
            for item in payload:
                if isinstance(item, NodeRef):
                    return item.graph
    return None


def _require_graph(graph: Graph | None, *values: Any) -> Graph:
    found = graph if graph is not None else _graph_of(*values)
    if found is None:
        raise GraphScopeError(
            "cannot tell which graph literal-only arithmetic belongs to; "
            "use Context.const() for at least one operand"
        )
    return found


# ---------------------------------------------------------------------------
# Binary dispatch table
# ---------------------------------------------------------------------------


def _scalar_scalar(graph: Graph, op: str, left: Any, right: Any) -> Any:
    return graph.intern(op, [left, right])


def _scalar_tuple(graph: Graph, op: str, left: Any, right: TupleValue) -> Any:
    return TupleValue(*(graph.intern(op, [left, item]) for item in right))


def _tuple_scalar(graph: Graph, op: str, left: TupleValue, right: Any) -> Any:
    return TupleValue(*(graph.intern(op, [item, right]) for item in left))


def _tuple_tuple(graph: Graph, op: str, left: TupleValue, right: TupleValue) -> Any:
    if len(left) != len(right):
        raise ShapeMismatchError(
            f"'{op}' needs tuples of equal arity, got {len(left)} and {len(right)}"
        )
    return TupleValue(*(graph.intern(op, [a, b]) for a, b in zip(left, right)))


def _bind(graph: Graph, op: str, left: Any, right: Any) -> Any:
    left_value, left_tokens = unwrap(left)
    right_value, right_tokens = unwrap(right)
    result = binary(op, left_value, right_value, graph=graph)
    return Effect(result, merge_tokens(left_tokens, right_tokens))


_BINARY_DISPATCH: dict[tuple[Shape, Shape], _Handler] = {
    (Shape.SCALAR, Shape.SCALAR): _scalar_scalar,
    (Shape.SCALAR, Shape.TUPLE): _scalar_tuple,
    (Shape.TUPLE, Shape.SCALAR): _tuple_scalar,
    (Shape.TUPLE, Shape.TUPLE): _tuple_tuple,
}
for _left in Shape:
    for _right in Shape:
        if _left.wrapped or _right.wrapped:
            _BINARY_DISPATCH[(_left, _right)] = _bind


def binary(op: str, left: Value, right: Value, *, graph: Graph | None = None) -> Any:
    """Combine two values with the pure binary operator *op*."""
    target = _require_graph(graph, left, right)
    handler = _BINARY_DISPATCH[(shape_of(left), shape_of(right))]
    return handler(target, op, left, right)


def unary(op: str, value: Value, *, graph: Graph | None = None) -> Any:
    target = _require_graph(graph, value)
    shape = shape_of(value)
    if shape.wrapped:
        payload, tokens = unwrap(value)
        return Effect(unary(op, payload, graph=target), tokens)
    if shape is Shape.TUPLE:
        return TupleValue(*(target.intern(op, [item]) for item in value))  # type: ignore[union-attr]
    return target.intern(op, [value])


def add(left: Value, right: Value) -> Any:
    return binary("add", left, right)


def sub(left: Value, right: Value) -> Any:
    return binary("sub", left, right)


def mul(left: Value, right: Value) -> Any:
    return binary("mul", left, right)


def div(left: Value, right: Value) -> Any:
    return binary("div", left, right)


def minimum(left: Value, right: Value) -> Any:
    return binary("min", left, right)


def maximum(left: Value, right: Value) -> Any:
    return binary("max", left, right)


def mix(values: list[Value]) -> Any:
    """Sum of all *values*, left to right."""
    if not values:
        raise ShapeMismatchError("mix needs at least one value")
    total = values[0]
    for value in values[1:]:
        total = binary("add", total, value)
    return total


# ---------------------------------------------------------------------------
# Operator overloading (active on import)
# ---------------------------------------------------------------------------


def _binop(op: str) -> Callable[[Any, Any], Any]:
    return lambda self, other: binary(op, self, other)


def _rbinop(op: str) -> Callable[[Any, Any], Any]:
    return lambda self, other: binary(op, other, self)


for _cls in (NodeRef, TupleValue, Effect):
    _cls.__add__ = _binop("add")  # type: ignore[attr-defined]
    _cls.__radd__ = _rbinop("add")  # type: ignore[attr-defined]
    _cls.__sub__ = _binop("sub")  # type: ignore[attr-defined]
    _cls.__rsub__ = _rbinop("sub")  # type: ignore[attr-defined]
    _cls.__mul__ = _binop("mul")  # type: ignore[attr-defined]
    _cls.__rmul__ = _rbinop("mul")  # type: ignore[attr-defined]
    _cls.__truediv__ = _binop("div")  # type: ignore[attr-defined]
    _cls.__rtruediv__ = _rbinop("div")  # type: ignore[attr-defined]
    _cls.__mod__ = _binop("mod")  # type: ignore[attr-defined]
    _cls.__rmod__ = _rbinop("mod")  # type: ignore[attr-defined]
    _cls.__pow__ = _binop("pow")  # type: ignore[attr-defined]
    _cls.__rpow__ = _rbinop("pow")  # type: ignore[attr-defined]
    _cls.__neg__ = lambda self: unary("neg", self)  # type: ignore[attr-defined]
    _cls.__abs__ = lambda self: unary("abs", self)  # type: ignore[attr-defined]

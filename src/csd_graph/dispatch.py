"""Shape-driven application of transforms.

``apply`` lets one transform serve plain scalars, tuples and
effect-wrapped values.  The shape of the operand picks the strategy:

1. tuple -> apply element-wise, reassemble with the same arity
2. effect-wrapped -> unwrap, apply, rewrap with the combined tokens
3. anything else -> apply directly
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from csd_graph.effects import Effect, merge_tokens, unwrap
from csd_graph.errors import ShapeMismatchError
from csd_graph.graph import NodeRef, TupleValue
from csd_graph.models import Constant, Shape

if TYPE_CHECKING:
    from csd_graph.context import Context


class Transform(BaseModel):
    """A named function over values, in a pure and/or an effectful form.

    ``arity=None`` declares a scalar transform, broadcast over tuples.
    ``arity=K`` declares a transform over whole K-tuples.  Plain operands
    use the pure form when there is one; effect-wrapped operands use the
    effectful form when there is one.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    pure: Optional[Callable[..., Any]] = None
    effectful: Optional[Callable[..., Any]] = None
    arity: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def _check_forms(self) -> Transform:
        if self.pure is None and self.effectful is None:
            raise ValueError(f"transform '{self.name}' needs a pure or an effectful form")
        return self

    def form(self, wrapped: bool) -> Callable[..., Any]:
        if wrapped and self.effectful is not None:
            return self.effectful
        if self.pure is not None:
            return self.pure
        return self.effectful  # type: ignore[return-value]


def shape_of(value: object) -> Shape:
    if isinstance(value, Effect):
        return Shape.EFFECT_TUPLE if isinstance(value.value, TupleValue) else Shape.EFFECT_SCALAR
    if isinstance(value, TupleValue):
        return Shape.TUPLE
    if isinstance(value, bool):
        raise ShapeMismatchError("booleans are not signal values")
    if isinstance(value, (NodeRef, Constant, int, float, str)):
        return Shape.SCALAR
    raise ShapeMismatchError(f"value of type {type(value).__name__} has no signal shape")


def apply(ctx: Context, transform: Transform, operand: Any) -> Any:
    """Apply *transform* to *operand*, returning a value of the same shape.

    A failure on any channel withdraws what earlier channels interned.
    """
    shape = shape_of(operand)
    with ctx.atomic():
        if shape.wrapped:
            inner, tokens = unwrap(operand)
            result = _apply(ctx, transform, inner, wrapped=True)
            payload, more = unwrap(result)
            return Effect(payload, merge_tokens(tokens, more))
        return _apply(ctx, transform, operand, wrapped=False)


def _apply(ctx: Context, transform: Transform, operand: Any, *, wrapped: bool) -> Any:
    if isinstance(operand, TupleValue) and transform.arity is None:
        return _broadcast(ctx, transform, operand, wrapped=wrapped)
    return _direct(ctx, transform, operand, wrapped=wrapped)


def _broadcast(ctx: Context, transform: Transform, operand: TupleValue, *, wrapped: bool) -> Any:
    payloads = []
    groups = []
    for item in operand:
        result = _direct(ctx, transform, item, wrapped=wrapped)
        payload, tokens = unwrap(result)
        payloads.append(payload)
        groups.append(tokens)
    value = TupleValue(*payloads)
    tokens = merge_tokens(*groups)
    return Effect(value, tokens) if tokens else value


def _direct(ctx: Context, transform: Transform, operand: Any, *, wrapped: bool) -> Any:
    if transform.arity is None:
        if isinstance(operand, TupleValue):
            raise ShapeMismatchError(f"'{transform.name}' takes a scalar, got a tuple")
        operand = ctx.graph.operand(operand)
    else:
        if not isinstance(operand, TupleValue):
            raise ShapeMismatchError(
                f"'{transform.name}' takes a {transform.arity}-tuple, got a scalar"
            )
        if len(operand) != transform.arity:
            raise ShapeMismatchError(
                f"'{transform.name}' takes a {transform.arity}-tuple, "
                f"got a {len(operand)}-tuple"
            )

    result = transform.form(wrapped)(ctx, operand)

    payload, _ = unwrap(result)
    if transform.arity is None and isinstance(payload, TupleValue):
        raise ShapeMismatchError(f"scalar transform '{transform.name}' returned a tuple")
    if transform.arity is not None and (
        not isinstance(payload, TupleValue) or len(payload) != transform.arity
    ):
        raise ShapeMismatchError(
            f"'{transform.name}' must return a {transform.arity}-tuple"
        )
    return result

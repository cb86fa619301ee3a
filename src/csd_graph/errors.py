"""Errors raised while assembling an expression graph.

Every error is raised before the node store is touched, so a failed
construction never leaves a partial node behind.
"""

from __future__ import annotations


class CsdGraphError(ValueError):
    """Base class for graph-assembly errors.

    Subclasses ``ValueError`` so callers that only know about invalid
    graphs (``except ValueError``) keep working.
    """

    kind: str = "graph_error"

    def __init__(self, message: str, *, node: int | None = None) -> None:
        super().__init__(message)
        self.node = node


class GraphScopeError(CsdGraphError):
    """An operand belongs to a different (or already rendered) graph."""

    kind = "graph_scope"


class RateConflictError(CsdGraphError):
    """An init-rate input received a live signal, or explicit rates disagree."""

    kind = "rate_conflict"


class EffectOrderError(CsdGraphError):
    """A read or write was issued before its resource was allocated."""

    kind = "effect_order"


class ShapeMismatchError(CsdGraphError):
    """An operand's shape does not fit the transform or primitive signature."""

    kind = "shape_mismatch"


class SizeError(CsdGraphError):
    """A table size is not a power of two (plus one, with a guard point)."""

    kind = "table_size"


class UnknownPrimitiveError(CsdGraphError):
    """A call names a primitive that was never registered."""

    kind = "unknown_primitive"


class ProgramError(CsdGraphError):
    """A program document refers to an unknown or duplicate statement id."""

    kind = "program"

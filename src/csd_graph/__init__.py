"""csd-graph: symbolic audio-synthesis expression graphs."""

from csd_graph import algebra  # noqa: F401  (installs operators)
from csd_graph.algebra import binary, mix, unary
from csd_graph.context import Context, render_program
from csd_graph.dispatch import Transform, apply, shape_of
from csd_graph.effects import (
    Effect,
    EffectSequencer,
    merge_tokens,
    modify_ref,
    new_ref,
    random,
    read_ref,
    unwrap,
    write_ref,
)
from csd_graph.errors import (
    CsdGraphError,
    EffectOrderError,
    GraphScopeError,
    ProgramError,
    RateConflictError,
    ShapeMismatchError,
    SizeError,
    UnknownPrimitiveError,
)
from csd_graph.graph import Graph, NodeRef, TupleValue
from csd_graph.models import (
    Constant,
    EffectClass,
    EffectToken,
    Instruction,
    InstructionRef,
    PrimitiveSpec,
    Rate,
    RenderConfig,
    RenderResult,
    ResourceClass,
    Shape,
    SignalNode,
    TableNode,
)
from csd_graph.primitives import PrimitiveRegistry, call, default_registry
from csd_graph.program import Program, Statement, build_program, load_program, render_document
from csd_graph.rates import ar, coerce, infer_rate, ir, kr, resolve_rate
from csd_graph.render import canonicalize
from csd_graph.tables import make_table, table_size
from csd_graph.visualize import result_to_dot, result_to_dot_file

__all__ = [
    "CsdGraphError",
    "Constant",
    "Context",
    "Effect",
    "EffectClass",
    "EffectOrderError",
    "EffectSequencer",
    "EffectToken",
    "Graph",
    "GraphScopeError",
    "Instruction",
    "InstructionRef",
    "NodeRef",
    "PrimitiveRegistry",
    "PrimitiveSpec",
    "Program",
    "ProgramError",
    "Rate",
    "RateConflictError",
    "RenderConfig",
    "RenderResult",
    "ResourceClass",
    "Shape",
    "ShapeMismatchError",
    "SignalNode",
    "SizeError",
    "Statement",
    "TableNode",
    "Transform",
    "TupleValue",
    "UnknownPrimitiveError",
    "apply",
    "ar",
    "binary",
    "build_program",
    "call",
    "canonicalize",
    "coerce",
    "default_registry",
    "infer_rate",
    "ir",
    "kr",
    "load_program",
    "make_table",
    "merge_tokens",
    "mix",
    "modify_ref",
    "new_ref",
    "random",
    "read_ref",
    "render_document",
    "render_program",
    "resolve_rate",
    "result_to_dot",
    "result_to_dot_file",
    "shape_of",
    "table_size",
    "unary",
    "unwrap",
    "write_ref",
]

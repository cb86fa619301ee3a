"""Declarative program documents.

A program is a JSON document listing statements in build order.  Each
statement binds an id to a primitive call; arguments starting with ``@``
refer to earlier statements (``@osc.1`` selects channel 1 of a tuple),
anything else is a literal::

    {
      "name": "noisy_sine",
      "primitives": [{"name": "oscil", "arity": 3, "rates": ["k", "k", "i"],
                      "output_rate": "a"}],
      "statements": [
        {"id": "tab", "op": "table", "gen": 10, "args": [1.0], "size": 4096},
        {"id": "amp", "op": "random", "args": [0.2, 0.8]},
        {"id": "sig", "op": "oscil", "args": ["@amp", 440.0, "@tab"]}
      ],
      "outputs": ["sig"]
    }
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator

from csd_graph.context import Context
from csd_graph.effects import unwrap
from csd_graph.errors import ProgramError
from csd_graph.graph import TupleValue
from csd_graph.models import PrimitiveSpec, Rate, RenderConfig, RenderResult
from csd_graph.primitives import default_registry

_SPECIAL_OPS = frozenset({"const", "table", "tuple", "ar", "kr", "ir"})


class Statement(BaseModel):
    id: str
    op: str
    args: list[Union[float, str]] = []
    rate: Optional[Rate] = None
    # table statements only
    gen: Union[int, str, None] = None
    size: Optional[int] = None
    guard: bool = False

    @field_validator("rate", mode="before")
    @classmethod
    def _parse_rate(cls, value: object) -> object:
        return None if value is None else Rate.from_expr(value)


class Program(BaseModel):
    name: str = "instr"
    config: RenderConfig = RenderConfig()
    primitives: list[PrimitiveSpec] = []
    statements: list[Statement] = []
    outputs: list[str] = []


def load_program(path: str | Path) -> Program:
    """Load and parse a program JSON file."""
    data = json.loads(Path(path).read_text())
    return Program.model_validate(data)


def _resolve(arg: Union[float, str], bindings: dict[str, Any], statement: Statement) -> Any:
    if not isinstance(arg, str) or not arg.startswith("@"):
        return arg
    name, _, channel = arg[1:].partition(".")
    if name not in bindings:
        raise ProgramError(
            f"statement '{statement.id}' refers to '{name}' before it is defined"
        )
    value = bindings[name]
    if not channel:
        return value
    payload, _ = unwrap(value)
    if not isinstance(payload, TupleValue):
        raise ProgramError(f"statement '{statement.id}': '{name}' is not a tuple")
    try:
        index = int(channel)
        return payload[index]
    except (ValueError, IndexError):
        raise ProgramError(
            f"statement '{statement.id}': '{name}' has no channel '{channel}'"
        ) from None


def _execute(ctx: Context, statement: Statement, args: list[Any]) -> Any:
    op = statement.op
    if op == "const":
        if len(args) != 1:
            raise ProgramError(f"statement '{statement.id}': const takes one literal")
        return ctx.const(args[0])
    if op == "table":
        if statement.gen is None:
            raise ProgramError(f"statement '{statement.id}': table needs 'gen'")
        return ctx.table(statement.gen, args, statement.size, guard=statement.guard)
    if op == "tuple":
        return ctx.tuple(*args)
    if op in ("ar", "kr", "ir"):
        if len(args) != 1:
            raise ProgramError(f"statement '{statement.id}': {op} takes one value")
        return getattr(ctx, op)(args[0])
    return ctx.call(op, *args, rate=statement.rate)


def build_program(program: Program) -> tuple[Context, list[Any]]:
    """Build *program* into a fresh Context; return it with the output values."""
    registry = default_registry()
    for spec in program.primitives:
        if spec.name in _SPECIAL_OPS:
            raise ProgramError(f"primitive name '{spec.name}' is reserved")
        registry.register(spec)

    ctx = Context(program.name, config=program.config, registry=registry)
    bindings: dict[str, Any] = {}
    for statement in program.statements:
        if statement.id in bindings:
            raise ProgramError(f"duplicate statement id '{statement.id}'")
        args = [_resolve(a, bindings, statement) for a in statement.args]
        bindings[statement.id] = _execute(ctx, statement, args)

    missing = [o for o in program.outputs if o not in bindings]
    if missing:
        raise ProgramError(f"unknown output(s): {', '.join(missing)}")
    return ctx, [bindings[o] for o in program.outputs]


def render_document(program: Program) -> RenderResult:
    ctx, outputs = build_program(program)
    return ctx.render(*outputs)

"""Build context: one graph and one effect stream, owned by one render.

A Context is passed explicitly to every effectful constructor, so
effect ordering never depends on ambient state::

    ctx = Context("pluck")
    tab = ctx.table(10, [1.0], size=4096)
    amp = ctx.random(0.2, 0.8)
    sig = ctx.call("oscil", amp, 440.0, tab)
    result = ctx.render(sig)
"""

from __future__ import annotations

import contextlib
from collections.abc import Iterator, Sequence
from typing import Any, Callable, Union

from csd_graph import effects as _effects
from csd_graph.dispatch import Transform, apply
from csd_graph.effects import Effect, EffectSequencer, merge_tokens, unwrap
from csd_graph.errors import GraphScopeError
from csd_graph.graph import Graph, NodeRef, TupleValue
from csd_graph.models import Rate, RenderConfig, RenderResult
from csd_graph.primitives import PrimitiveRegistry, call, default_registry
from csd_graph.rates import coerce
from csd_graph.render import render
from csd_graph.tables import make_table


def _coercion(rate: Rate) -> Transform:
    return Transform(
        name=f"to_{rate.token}",
        pure=lambda ctx, value: coerce(ctx.graph, value, rate),
    )


_TO_AUDIO = _coercion(Rate.AUDIO)
_TO_CONTROL = _coercion(Rate.CONTROL)
_TO_INIT = _coercion(Rate.INIT)


class Context:
    def __init__(
        self,
        name: str = "instr",
        *,
        config: RenderConfig | None = None,
        registry: PrimitiveRegistry | None = None,
    ) -> None:
        self.graph = Graph(name)
        self.effects = EffectSequencer(self.graph)
        self.config = config or RenderConfig()
        self.registry = registry if registry is not None else default_registry()

    def __repr__(self) -> str:
        return f"<Context {self.name!r} nodes={len(self.graph)} effects={len(self.effects)}>"

    @property
    def name(self) -> str:
        return self.graph.name

    @property
    def rendered(self) -> bool:
        return self.graph.sealed

    @contextlib.contextmanager
    def atomic(self) -> Iterator[None]:
        """Withdraw every node and effect added in the block if it raises."""
        nodes = len(self.graph)
        issued = len(self.effects)
        try:
            yield
        except Exception:
            self.effects.rollback(issued)
            self.graph.rollback(nodes)
            raise

    # -- leaves -------------------------------------------------------------

    def const(self, value: float | str) -> NodeRef:
        return self.graph.constant(value)

    def table(
        self,
        gen: Union[int, str],
        params: Sequence[float] = (),
        size: int | None = None,
        *,
        guard: bool = False,
    ) -> NodeRef:
        return make_table(self.graph, gen, params, size, guard=guard)

    def tuple(self, *items: Any) -> TupleValue | Effect:
        """Group scalars into a tuple; effect-wrapped items wrap the whole tuple."""
        payloads = []
        groups = []
        for item in items:
            payload, tokens = unwrap(item)
            payloads.append(payload)
            groups.append(tokens)
        value = TupleValue(*payloads)
        tokens = merge_tokens(*groups)
        return Effect(value, tokens) if tokens else value

    # -- combinators --------------------------------------------------------

    def call(self, name: str, *args: Any, rate: Rate | None = None) -> Any:
        return call(self, name, *args, rate=rate)

    def apply(self, transform: Transform, operand: Any) -> Any:
        return apply(self, transform, operand)

    def ar(self, value: Any) -> Any:
        """Audio-rate view of *value* (control values are held per block)."""
        return apply(self, _TO_AUDIO, value)

    def kr(self, value: Any) -> Any:
        """Control-rate view of *value* (last sample of each block)."""
        return apply(self, _TO_CONTROL, value)

    def ir(self, value: Any) -> Any:
        """Init-rate snapshot of *value*, taken once at instantiation."""
        return apply(self, _TO_INIT, value)

    # -- effects ------------------------------------------------------------

    def random(self, lo: Any = 0.0, hi: Any = 1.0) -> Effect:
        return _effects.random(self, lo, hi)

    def new_ref(self, init: Any, rate: Rate | None = None) -> Effect:
        return _effects.new_ref(self, init, rate)

    def read_ref(self, handle: NodeRef | Effect) -> Effect:
        return _effects.read_ref(self, handle)

    def write_ref(self, handle: NodeRef | Effect, value: Any) -> Effect:
        return _effects.write_ref(self, handle, value)

    def modify_ref(self, handle: NodeRef | Effect, fn: Callable[[NodeRef], Any]) -> Effect:
        return _effects.modify_ref(self, handle, fn)

    # -- rendering ----------------------------------------------------------

    def render(self, *roots: Any) -> RenderResult:
        """Render this context's graph and seal it against further use."""
        if self.graph.sealed:
            raise GraphScopeError(
                f"context '{self.name}' was already rendered; build a fresh Context"
            )
        result = render(
            self.graph,
            roots,
            effects=self.effects,
            config=self.config,
            commutative=self.registry.commutative_ops(),
        )
        self.graph.seal()
        return result


def render_program(
    build: Callable[[Context], Any],
    *,
    name: str = "instr",
    config: RenderConfig | None = None,
    registry: PrimitiveRegistry | None = None,
) -> RenderResult:
    """Run *build* against a fresh Context and render what it returns.

    A tuple or list returned by *build* is treated as several roots.
    """
    ctx = Context(name, config=config, registry=registry)
    roots = build(ctx)
    if isinstance(roots, (list, tuple)):
        return ctx.render(*roots)
    return ctx.render(roots)

from __future__ import annotations

import json
from pathlib import Path

import pytest

from csd_graph import (
    Context,
    EffectClass,
    Graph,
    NodeRef,
    PrimitiveRegistry,
    Rate,
    default_registry,
)


@pytest.fixture
def ctx() -> Context:
    """Fresh context with only the builtin primitives."""
    return Context("test")


@pytest.fixture
def synth_registry() -> PrimitiveRegistry:
    """Builtins plus a few opcode-like primitives with rate requirements."""
    registry = default_registry()
    # amplitude k, frequency k, table i -> audio
    registry.define("oscil", 3, rates=["k", "k", "i"], output_rate="a")
    # audio in, cutoff k -> audio
    registry.define("tone", 2, rates=["a", "k"])
    # mono in, pan position -> left/right
    registry.define("pan2", 2, rates=["a", "k"], outputs=2, output_rate="a")
    # envelope over init-rate breakpoints
    registry.define("linseg", 3, rates=["i", "i", "i"], output_rate="k")
    registry.define("noise", 1, effect=EffectClass.EFFECTFUL, output_rate="a")
    return registry


@pytest.fixture
def synth(synth_registry: PrimitiveRegistry) -> Context:
    return Context("synth", registry=synth_registry)


@pytest.fixture
def graph() -> Graph:
    return Graph("g")


@pytest.fixture
def audio_node(graph: Graph) -> NodeRef:
    """A pure audio-rate node without operands."""
    return graph.intern("phasor", [], output_rate=Rate.AUDIO)


@pytest.fixture
def control_node(graph: Graph) -> NodeRef:
    """A pure control-rate node fed by a literal."""
    return graph.intern("lfo", [2.0], Rate.CONTROL)


@pytest.fixture
def program_data() -> dict:
    """A small program: a random amplitude driving a sine oscillator."""
    return {
        "name": "noisy_sine",
        "config": {"ksmps": 32},
        "primitives": [
            {"name": "oscil", "arity": 3, "rates": ["k", "k", "i"], "output_rate": "a"}
        ],
        "statements": [
            {"id": "tab", "op": "table", "gen": 10, "args": [1.0], "size": 4096},
            {"id": "amp", "op": "random", "args": [0.2, 0.8]},
            {"id": "sig", "op": "oscil", "args": ["@amp", 440.0, "@tab"]},
            {"id": "out", "op": "mul", "args": ["@sig", 0.5]},
        ],
        "outputs": ["out"],
    }


@pytest.fixture
def program_json(tmp_path: Path, program_data: dict) -> Path:
    p = tmp_path / "program.json"
    p.write_text(json.dumps(program_data))
    return p
